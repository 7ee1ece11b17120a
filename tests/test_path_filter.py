import os

import pytest

from procwatch.local.supervisor.path_filter import RestartPolicy, clean_extension, to_abs_dir_path


@pytest.fixture
def policy():
    return RestartPolicy(["go", "mod"], ["vendor"], cwd="/proj")


@pytest.mark.parametrize("path, accepted", [
    ("/proj/main.go", True),
    ("/proj/go.mod", True),
    ("/proj/pkg/server/http.go", True),
    ("/proj/README.md", False),
    ("/proj/vendor/lib/a.go", False),
    ("/proj/vendored.go", True),
    ("/proj/vendor.go", True),
    ("/proj/Makefile", False),
])
def test_accept(policy, path, accepted):
    assert policy.accept(path) is accepted


def test_empty_extension_list_accepts_everything():
    policy = RestartPolicy([], cwd="/proj")
    assert policy.accept("/proj/Makefile")
    assert policy.accept("/proj/notes.txt")


def test_extension_match_is_case_insensitive():
    assert RestartPolicy(["PY"], cwd="/proj").accept("/proj/App.Py")


@pytest.mark.parametrize("ignored, path, ignored_expected", [
    ("one", "/proj/one/file", True),
    ("one", "/proj/one", False),
    ("one", "/proj/one_two/file", False),
    ("one/", "/proj/one/two/file", True),
    ("./one/../two", "/proj/two/file", True),
    ("/abs/dir", "/abs/dir/file", True),
    ("/abs/dir", "/proj/abs/dir/file", False),
    (".", "/proj/anything", True),
    (".", "/elsewhere/anything", False),
])
def test_ignored_dirs(ignored, path, ignored_expected):
    policy = RestartPolicy([], [ignored], cwd="/proj")
    assert policy.is_ignored(path) is ignored_expected


def test_to_abs_dir_path_adds_trailing_separator():
    assert to_abs_dir_path("src", "/proj") == "/proj/src" + os.sep
    assert to_abs_dir_path("/tmp/", "/proj") == "/tmp" + os.sep


@pytest.mark.parametrize("path, ext", [
    ("main.go", "go"),
    ("archive.tar.gz", "gz"),
    (".bashrc", ""),
    ("Makefile", ""),
])
def test_clean_extension(path, ext):
    assert clean_extension(path) == ext
