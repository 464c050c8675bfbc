"""Tests for the run-folder helpers."""
import json
import os

from run_protocol import (
    create_run_id,
    prepare_run_dir,
    slugify,
    update_latest_pointer,
    write_input_params,
)


class TestRunProtocol:

    def test_slugify(self):
        assert slugify("  Standard 25-Place Box! ") == "standard-25-place-box"
        assert slugify("***") == "run"

    def test_run_id_ends_with_slug(self):
        assert create_run_id("My Box").endswith("_my-box")

    def test_prepare_run_dir_layout(self, tmp_path):
        paths = prepare_run_dir(str(tmp_path), "box")
        assert paths.input_dir.is_dir()
        assert paths.artifacts_dir.is_dir()
        assert paths.report_path == paths.run_dir / "report.json"
        assert paths.run_dir.parent == tmp_path

    def test_write_input_params(self, tmp_path):
        path = write_input_params({"num_slots": 25}, tmp_path)
        assert json.loads(path.read_text()) == {"num_slots": 25}

    def test_latest_pointer_replaced(self, tmp_path):
        first = prepare_run_dir(str(tmp_path), "first")
        second = prepare_run_dir(str(tmp_path), "second")
        update_latest_pointer(str(tmp_path), first.run_dir)
        update_latest_pointer(str(tmp_path), second.run_dir)
        latest = tmp_path / "latest"
        assert latest.is_symlink()
        assert latest.resolve() == second.run_dir.resolve()

    def test_latest_link_is_relative(self, tmp_path):
        paths = prepare_run_dir(str(tmp_path), "box")
        update_latest_pointer(str(tmp_path), paths.run_dir)
        assert os.readlink(tmp_path / "latest") == paths.run_id
