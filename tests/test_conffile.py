import os

import pytest

from procwarden.conffile import find_supervisord_conf, get_supervisord_log_file, load_env_file


@pytest.fixture
def private_environ(monkeypatch):
    monkeypatch.setattr(os, "environ", os.environ.copy())
    return os.environ


def test_load_env_file_sets_variables(tmp_path, private_environ):
    env_file = tmp_path / "app.env"
    env_file.write_text(
        "# a comment\n"
        "A_K=1\n"
        "export B_K = two \n"
        "exportX=3\n"
        "C_K=\n"
        "noequals\n"
        "LAST_K=x"
    )
    loaded = load_env_file(str(env_file))
    assert loaded == {"A_K": "1", "B_K": "two", "exportX": "3"}
    assert private_environ["A_K"] == "1"
    assert private_environ["B_K"] == "two"
    assert "C_K" not in private_environ
    assert "LAST_K" not in private_environ


def test_load_env_file_without_path(private_environ):
    assert load_env_file("") == {}
    assert load_env_file(None) == {}


def test_load_env_file_missing(tmp_path, private_environ):
    assert load_env_file(str(tmp_path / "missing.env")) == {}


def _limit_exists_to(monkeypatch, root):
    real_exists = os.path.exists

    def exists(path):
        return real_exists(path) and os.path.abspath(path).startswith(str(root))

    monkeypatch.setattr(os.path, "exists", exists)


def test_find_given_configuration(tmp_path, monkeypatch):
    conf = tmp_path / "my.conf"
    conf.write_text("[supervisord]\n")
    monkeypatch.chdir(tmp_path)
    assert find_supervisord_conf("my.conf") == str(conf)


def test_find_etc_in_cwd(tmp_path, monkeypatch):
    work = tmp_path / "work"
    (work / "etc").mkdir(parents=True)
    conf = work / "etc" / "supervisord.conf"
    conf.write_text("")
    monkeypatch.chdir(work)
    _limit_exists_to(monkeypatch, tmp_path)
    assert find_supervisord_conf("") == str(conf)


def test_find_parent_directory(tmp_path, monkeypatch):
    work = tmp_path / "work"
    work.mkdir()
    conf = tmp_path / "supervisord.conf"
    conf.write_text("")
    monkeypatch.chdir(work)
    _limit_exists_to(monkeypatch, tmp_path)
    assert find_supervisord_conf(None) == str(conf)


def test_find_nothing(tmp_path, monkeypatch):
    work = tmp_path / "a" / "b"
    work.mkdir(parents=True)
    monkeypatch.chdir(work)
    _limit_exists_to(monkeypatch, tmp_path)
    with pytest.raises(FileNotFoundError):
        find_supervisord_conf("absent.conf")


def test_log_file_with_here(tmp_path):
    conf = tmp_path / "supervisord.conf"
    conf.write_text("[supervisord]\nlogfile=%(here)s/sv.log\n")
    assert get_supervisord_log_file(str(conf)) == str(tmp_path) + "/sv.log"


def test_log_file_default(tmp_path, monkeypatch):
    conf = tmp_path / "supervisord.conf"
    conf.write_text("[supervisord]\nnodaemon=true\n")
    monkeypatch.chdir(tmp_path)
    assert get_supervisord_log_file(str(conf)) == os.path.join(os.getcwd(), "supervisord.log")


def test_log_file_bad_expression(tmp_path):
    conf = tmp_path / "supervisord.conf"
    conf.write_text("[supervisord]\nlogfile=%(no_such_var)s/sv.log\n")
    assert get_supervisord_log_file(str(conf)) == os.path.join(".", "supervisord.log")