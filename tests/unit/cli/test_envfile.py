import os

import pytest

from tablero.cli.envfile import extract_env_files, load_env_files, parse_env_file_text


def test_extract_env_files_supports_both_forms():
    env_files, argv = extract_env_files(
        ["users", "create", "ana@municipio.gob", "--env-file", ".env.local", "--role", "admin", "--env-file=extra.env"]
    )
    assert env_files == [".env.local", "extra.env"]
    assert argv == ["users", "create", "ana@municipio.gob", "--role", "admin"]


def test_extract_env_files_errors_on_missing_value():
    with pytest.raises(SystemExit):
        extract_env_files(["api", "start", "--env-file"])


def test_parse_env_file_text_handles_comments_and_quotes():
    parsed = parse_env_file_text(
        "\n".join(
            [
                "# comment",
                "export TABLERO_ASSISTANT_PROVIDER=openai  # inline",
                'TABLERO_ASSISTANT_SYSTEM_PROMPT_EXTRA="Sé breve # sin viñetas"',
                "TABLERO_OPENAI_URL=http://llm.local/v1#frag",
                "NOT A PAIR",
                "=orphan",
            ]
        )
    )
    assert parsed == {
        "TABLERO_ASSISTANT_PROVIDER": "openai",
        "TABLERO_ASSISTANT_SYSTEM_PROMPT_EXTRA": "Sé breve # sin viñetas",
        "TABLERO_OPENAI_URL": "http://llm.local/v1#frag",
    }


def test_load_env_files_later_files_win(tmp_path, monkeypatch):
    first = tmp_path / "a.env"
    second = tmp_path / "b.env"
    first.write_text("TABLERO_TEST_A=1\nTABLERO_TEST_B=1\n", encoding="utf-8")
    second.write_text("TABLERO_TEST_B=2\n", encoding="utf-8")
    monkeypatch.setenv("TABLERO_TEST_A", "0")
    monkeypatch.setenv("TABLERO_TEST_B", "0")

    merged = load_env_files([first, second])

    assert merged == {"TABLERO_TEST_A": "1", "TABLERO_TEST_B": "2"}
    assert os.environ["TABLERO_TEST_B"] == "2"


def test_load_env_files_missing_file(tmp_path):
    with pytest.raises(SystemExit):
        load_env_files([tmp_path / "nope.env"])
