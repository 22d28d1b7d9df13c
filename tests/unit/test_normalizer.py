"""
Unit tests for forge_builder.normalizer.
"""

import pytest

from forge_builder.normalizer import is_remote_url, normalize
from forge_common.errors import (
    EmptyNameError,
    InvalidOptionError,
    InvalidSourceError,
    MalformedEnvError,
    MalformedPlatformError,
    UnknownOptionError,
    ValidationError,
)
from forge_common.models import BuildOptions, LocalSource, RemoteSource


def no_dirs(path: str) -> bool:
    return False


def request(**overrides):
    body = {"path": "https://github.com/a/b.git", "name": "img1"}
    body.update(overrides)
    return body


class TestNormalizeRequest:
    """Test suite for complete build requests."""

    def test_full_request(self):
        """A request with envs and options produces a fully-resolved spec."""
        spec = normalize(
            {
                "path": "https://github.com/a/b.git",
                "name": "img1",
                "envs": ["A=1"],
                "build_options": {"tags": ["v1"], "no_cache": True},
            },
            is_dir=no_dirs,
        )

        assert spec.source == RemoteSource(url="https://github.com/a/b.git")
        assert spec.image_name == "img1"
        assert spec.env_vars == ("A=1",)
        assert spec.options.tags == ("v1",)
        assert spec.options.no_cache is True
        assert spec.options.quiet is False
        assert spec.options.platforms == ()
        assert spec.options.cache_key is None

    def test_missing_options_default_to_off(self):
        spec = normalize(request(), is_dir=no_dirs)

        assert spec.env_vars == ()
        assert spec.options == BuildOptions()

    def test_null_envs_and_options_are_empty(self):
        spec = normalize(request(envs=None, build_options=None), is_dir=no_dirs)

        assert spec.env_vars == ()
        assert spec.options == BuildOptions()

    def test_same_request_gives_equal_specs(self):
        body = request(envs=["A=1", "B=2"], build_options={"labels": ["x=y"], "verbose": True})

        assert normalize(body, is_dir=no_dirs) == normalize(body, is_dir=no_dirs)

    def test_non_object_body(self):
        with pytest.raises(InvalidOptionError):
            normalize(["img1"], is_dir=no_dirs)

    def test_unknown_top_level_field(self):
        with pytest.raises(UnknownOptionError) as exc_info:
            normalize(request(tag="v1"), is_dir=no_dirs)
        assert exc_info.value.field == "tag"

    def test_checks_source_before_name(self):
        """The first failing check in order is the one reported."""
        with pytest.raises(InvalidSourceError):
            normalize({"path": "", "name": ""}, is_dir=no_dirs)

    def test_error_to_dict(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize(request(name=""), is_dir=no_dirs)

        assert exc_info.value.to_dict() == {
            "error": "empty_name",
            "field": "name",
            "message": "name must be a non-empty image name",
        }


class TestSource:
    """Test suite for source resolution."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/a/b.git",
            "http://git.example.com/team/app",
            "git://example.com/repo.git",
            "ssh://git@example.com/repo.git",
            "git@github.com:a/b.git",
            "file:///srv/repos/app.git",
        ],
    )
    def test_remote_urls(self, url):
        spec = normalize(request(path=url), is_dir=no_dirs)
        assert spec.source == RemoteSource(url=url)

    def test_local_directory(self, tmp_path):
        spec = normalize(request(path=str(tmp_path)))
        assert spec.source == LocalSource(path=str(tmp_path))

    def test_local_path_is_normalized(self, tmp_path):
        spec = normalize(request(path=f"{tmp_path}/./"))
        assert spec.source == LocalSource(path=str(tmp_path))

    def test_missing_directory(self, tmp_path):
        with pytest.raises(InvalidSourceError) as exc_info:
            normalize(request(path=str(tmp_path / "missing")))
        assert exc_info.value.field == "path"

    @pytest.mark.parametrize("path", [None, "", "   ", 42, "ftp://example.com/repo", "https://"])
    def test_invalid_sources(self, path):
        with pytest.raises(InvalidSourceError):
            normalize(request(path=path), is_dir=no_dirs)

    def test_is_remote_url_rejects_host_without_repository(self):
        assert not is_remote_url("https://github.com/")
        assert is_remote_url("https://github.com/a")


class TestName:
    """Test suite for image name validation."""

    @pytest.mark.parametrize(
        "name",
        ["img1", "my-app", "team/app", "registry.example.com:5000/team/app", "a_b.c"],
    )
    def test_valid_names(self, name):
        assert normalize(request(name=name), is_dir=no_dirs).image_name == name

    @pytest.mark.parametrize("name", [None, "", 7, "Upper", "bad name", "app:v1", "-app", "x" * 256])
    def test_invalid_names(self, name):
        with pytest.raises(EmptyNameError):
            normalize(request(name=name), is_dir=no_dirs)


class TestEnvs:
    """Test suite for environment variables."""

    def test_order_is_preserved(self):
        spec = normalize(request(envs=["B=2", "A=1", "C="]), is_dir=no_dirs)
        assert spec.env_vars == ("B=2", "A=1", "C=")

    @pytest.mark.parametrize("entry", ["A", "=1", "A=1=2", 5, None])
    def test_malformed_entries(self, entry):
        with pytest.raises(MalformedEnvError) as exc_info:
            normalize(request(envs=["OK=1", entry]), is_dir=no_dirs)
        assert exc_info.value.field == "envs"

    def test_envs_must_be_a_list(self):
        with pytest.raises(MalformedEnvError):
            normalize(request(envs="A=1"), is_dir=no_dirs)


class TestBuildOptions:
    """Test suite for build option normalization."""

    def test_all_options(self):
        spec = normalize(
            request(
                build_options={
                    "print_dockerfile": True,
                    "tags": ["v1", "latest"],
                    "labels": ["team=core"],
                    "quiet": True,
                    "no_cache": True,
                    "inline_cache": True,
                    "platforms": ["linux/amd64", "linux/arm64"],
                    "use_current_dir": True,
                    "no_error_without_start": True,
                    "verbose": True,
                    "cache_key": "k1",
                    "cache_from": "img1:cache",
                    "out_dir": "/tmp/out",
                    "incremental_cache_image": "img1:inc",
                }
            ),
            is_dir=no_dirs,
        )

        options = spec.options
        assert options.print_dockerfile and options.quiet and options.no_cache
        assert options.inline_cache and options.use_current_dir
        assert options.no_error_without_start and options.verbose
        assert options.tags == ("v1", "latest")
        assert options.labels == ("team=core",)
        assert options.platforms == ("linux/amd64", "linux/arm64")
        assert options.cache_key == "k1"
        assert options.cache_from == "img1:cache"
        assert options.out_dir == "/tmp/out"
        assert options.incremental_cache_image == "img1:inc"

    def test_duplicate_list_entries_are_removed_in_order(self):
        spec = normalize(request(build_options={"tags": ["v2", "v1", "v2"]}), is_dir=no_dirs)
        assert spec.options.tags == ("v2", "v1")

    def test_unknown_option(self):
        with pytest.raises(UnknownOptionError) as exc_info:
            normalize(request(build_options={"squash": True}), is_dir=no_dirs)
        assert exc_info.value.field == "build_options.squash"

    def test_aliases(self):
        spec = normalize(
            request(build_options={"platform": ["linux/amd64"], "current_dir": True}),
            is_dir=no_dirs,
        )
        assert spec.options.platforms == ("linux/amd64",)
        assert spec.options.use_current_dir is True

    def test_alias_and_canonical_name_together(self):
        with pytest.raises(InvalidOptionError):
            normalize(
                request(build_options={"platform": ["linux/amd64"], "platforms": ["linux/arm64"]}),
                is_dir=no_dirs,
            )

    @pytest.mark.parametrize("platform", ["linux", "linux/", "/amd64", "Linux/AMD64", "linux/arm/v7"])
    def test_malformed_platforms(self, platform):
        with pytest.raises(MalformedPlatformError):
            normalize(request(build_options={"platforms": [platform]}), is_dir=no_dirs)

    @pytest.mark.parametrize(
        "options",
        [
            {"no_cache": "yes"},
            {"quiet": 1},
            {"tags": "v1"},
            {"tags": ["has space"]},
            {"labels": [""]},
            {"platforms": [3]},
            {"cache_key": ""},
            {"out_dir": 5},
        ],
    )
    def test_wrongly_typed_options(self, options):
        with pytest.raises(InvalidOptionError):
            normalize(request(build_options=options), is_dir=no_dirs)

    def test_options_must_be_an_object(self):
        with pytest.raises(InvalidOptionError):
            normalize(request(build_options=["no_cache"]), is_dir=no_dirs)

    def test_null_string_option_means_unset(self):
        spec = normalize(request(build_options={"cache_key": None}), is_dir=no_dirs)
        assert spec.options.cache_key is None
