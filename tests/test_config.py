import dataclasses

import pytest

from mfsbench.config import BenchConfig, SetupConfig


class TestBenchConfig:
    def test_defaults(self):
        config = BenchConfig()
        assert config.api_url == "http://localhost:15001/api/v0"
        assert config.mfs_root == "/mfs-test"
        assert config.num_files == 50
        assert config.iterations == 3
        assert (config.min_depth, config.max_depth) == (1, 100)
        assert config.file_size == 1024
        assert config.layout == "flat"
        assert config.parent_policy == "write"
        assert config.timeout is None

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            BenchConfig().num_files = 10

    def test_replace(self):
        config = dataclasses.replace(BenchConfig(), num_files=10, layout="mirror")
        assert config.num_files == 10
        assert config.layout == "mirror"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"num_files": 0},
            {"iterations": 0},
            {"min_depth": 5, "max_depth": 2},
            {"min_depth": -1},
            {"file_size": -1},
            {"mfs_root": "relative"},
            {"mfs_root": "/"},
            {"layout": "tree"},
            {"parent_policy": "guess"},
        ],
    )
    def test_rejects_bad_values(self, overrides):
        with pytest.raises(ValueError):
            BenchConfig(**overrides)


class TestSetupConfig:
    def test_defaults(self):
        config = SetupConfig()
        assert config.total_files == 5000
        assert config.max_depth == 2
        assert config.approach == "memory"
        assert config.batch_size == 1000
        assert config.files_dir == "/mfs-test/files"

    def test_files_dir_strips_trailing_slash(self):
        assert SetupConfig(mfs_root="/x/").files_dir == "/x/files"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"total_files": 0},
            {"max_depth": 0},
            {"batch_size": 0},
            {"file_size": -1},
            {"approach": "ftp"},
        ],
    )
    def test_rejects_bad_values(self, overrides):
        with pytest.raises(ValueError):
            SetupConfig(**overrides)

    def test_zero_file_size_allowed(self):
        assert SetupConfig(file_size=0).file_size == 0
