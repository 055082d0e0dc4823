import numpy as np
import pytest
from click.testing import CliRunner
from PIL import Image

import cli.main as cli_main
from analysis.prediction import InferenceService
from core.models import LayerRegistry

from conftest import TINY_LAYERS, make_tiny_net


@pytest.fixture
def patched_cli(monkeypatch):
    def fake_load(model_name, context=None, pretrained=True, **kwargs):
        model = make_tiny_net()
        return InferenceService(model, LayerRegistry(model, TINY_LAYERS, "conv2"), context=context)

    monkeypatch.setattr(cli_main.InferenceService, "load", staticmethod(fake_load))
    monkeypatch.setattr(cli_main, "load_labels", lambda url: ["cat", "dog", "fox"])


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "photo.png"
    rng = np.random.default_rng(0)
    Image.fromarray(rng.integers(0, 256, size=(60, 80, 3), dtype=np.uint8)).save(path)
    return path


def test_cli_writes_both_artifacts(patched_cli, image_file, tmp_path):
    out = tmp_path / "out"
    result = CliRunner().invoke(cli_main.main, [str(image_file), "--output", str(out),
                                                "--device", "cpu", "--figure"])
    assert result.exit_code == 0, result.output
    with Image.open(out / "photo_gradcam.png") as composite:
        assert composite.size == (80, 60)
    with Image.open(out / "photo_heatmap.png") as heatmap:
        # 224x224 input, stride-2 conv: 112x112 feature map
        assert heatmap.size == (112, 112)
    assert (out / "photo_summary.png").exists()
    assert (out / "photo_confidence.png").exists()
    assert "photo.png" in result.output


def test_cli_reports_bad_class_index(patched_cli, image_file, tmp_path):
    result = CliRunner().invoke(cli_main.main, [str(image_file), "--output", str(tmp_path),
                                                "--device", "cpu", "--class-index", "7"])
    assert result.exit_code != 0
    assert "out of range" in result.output


def test_cli_rejects_unknown_layer(patched_cli, image_file, tmp_path):
    result = CliRunner().invoke(cli_main.main, [str(image_file), "--output", str(tmp_path),
                                                "--device", "cpu", "--layer", "layer4"])
    assert result.exit_code != 0
    assert "Unknown layer" in result.output


def test_cli_unreadable_image_fails_only_that_image(patched_cli, image_file, tmp_path):
    bad = tmp_path / "broken.png"
    bad.write_bytes(b"not an image")
    out = tmp_path / "out"
    result = CliRunner().invoke(cli_main.main, [str(image_file), str(bad), "--output", str(out),
                                                "--device", "cpu"])
    assert result.exit_code == 1
    assert "1 of 2 image(s) failed" in result.output
    assert "broken.png" in result.output
    assert (out / "photo_gradcam.png").exists()
    assert not (out / "broken_gradcam.png").exists()


def test_cli_unwritable_output_is_reported(patched_cli, image_file, tmp_path):
    # A regular file where the output directory should be
    out = tmp_path / "taken"
    out.write_text("")
    result = CliRunner().invoke(cli_main.main, [str(image_file), "--output", str(out),
                                                "--device", "cpu"])
    assert result.exit_code == 1
    assert "1 of 1 image(s) failed" in result.output
