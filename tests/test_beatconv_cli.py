import json
import logging
from pathlib import Path

from beatconv import main
from helpers import SIMPLE_SIMFILE
from logging_config import configure_logging
from sm_store import load_simfile


def write_config(path: Path, nodes) -> Path:
    path.write_text(json.dumps({"seed": 5, "nodes": nodes}), encoding="utf-8")
    return path


def test_cli_converts_sources(tmp_path: Path) -> None:
    song_dir = tmp_path / "songs" / "Little Song"
    song_dir.mkdir(parents=True)
    (song_dir / "little.sm").write_text(SIMPLE_SIMFILE, encoding="utf-8")
    (song_dir / "song.ogg").write_bytes(b"OggS")
    output_dir = tmp_path / "converted"
    config_path = write_config(
        tmp_path / "config.json",
        [
            {"Load": {"paths": [str(tmp_path / "songs")], "gamemodes": ["dance-single"]}},
            {"Rekey": {"gamemode": "pump-single"}},
            {"Rate": {"method": "Density"}},
            {"Select": {"max": 2, "diff_names": ["Easy", "Hard"]}},
            {"Write": {"output": str(output_dir), "copy": ["Copy"]}},
        ],
    )

    assert main(["--config", str(config_path)]) == 0

    easy, hard = load_simfile(output_dir / "Little Song" / "little.sm")
    assert easy.gamemode == "pump-single"
    assert (easy.difficulty, hard.difficulty) == ("Easy", "Hard")
    assert (output_dir / "Little Song" / "song.ogg").exists()


def test_cli_reports_config_errors(tmp_path: Path) -> None:
    config_path = write_config(tmp_path / "config.json", [{"Rate": {}}])

    assert main(["--config", str(config_path)]) == 2


def test_cli_reports_failed_sources(tmp_path: Path) -> None:
    song_dir = tmp_path / "songs"
    song_dir.mkdir()
    (song_dir / "broken.sm").write_text("#TITLE:Broken;\n", encoding="utf-8")
    config_path = write_config(
        tmp_path / "config.json",
        [{"Load": {"paths": [str(song_dir)]}}, {"Write": {"output": str(tmp_path / "out")}}],
    )

    assert main(["--config", str(config_path), "--workers", "2"]) == 1


def test_configure_logging_is_idempotent() -> None:
    configure_logging("info")
    configure_logging("verbose")

    tagged = [handler for handler in logging.getLogger().handlers if getattr(handler, "_beatconv_logging_handler", False)]
    assert len(tagged) == 1
    assert logging.getLogger().level == logging.DEBUG
