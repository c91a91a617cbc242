"""Command-line surface."""

import numpy as np
import pytest

from tiled_winograd import direct_conv2d
from tiled_winograd.cli import main
from tiled_winograd.tensor_io import read_output, write_problem


@pytest.fixture
def input_file(tmp_path, rng):
    path = tmp_path / "in.txt"
    filters = rng.standard_normal((2, 3, 3, 3)).astype(np.float32)
    image = rng.standard_normal((3, 8, 6)).astype(np.float32)
    write_problem(path, filters, image)
    return path, filters, image


def test_end_to_end(tmp_path, input_file, capsys):
    in_path, filters, image = input_file
    out_path = tmp_path / "out.txt"

    assert main([str(in_path), str(out_path), "--backend", "torch", "--device", "cpu"]) == 0

    K, C, Y = read_output(out_path)
    assert (K, C) == (2, 3)
    np.testing.assert_allclose(Y, direct_conv2d(filters, image), atol=1e-4)
    out = capsys.readouterr().out
    assert "Floating point operations:" in out
    assert "MFlop/s:" in out


def test_check_flag(tmp_path, input_file, capsys):
    in_path, _, _ = input_file
    assert main([str(in_path), str(tmp_path / "o.txt"), "--device", "cpu", "--check"]) == 0
    assert "Max abs error vs direct conv" in capsys.readouterr().out


@pytest.mark.parametrize("argv", [[], ["only-one"], ["a", "b", "c"]])
def test_usage_exits_zero(argv, capsys):
    assert main(argv) == 0
    assert "Usage:" in capsys.readouterr().out


def test_usage_strict():
    assert main(["--strict"]) == 2


def test_odd_height_writes_nothing(tmp_path, capsys):
    in_path = tmp_path / "in.txt"
    in_path.write_text("1 1 5 4\n" + "0 " * (9 + 20))
    out_path = tmp_path / "out.txt"

    assert main([str(in_path), str(out_path)]) == 0
    assert not out_path.exists()
    assert "H (height of image) is even" in capsys.readouterr().out


def test_odd_height_strict(tmp_path):
    in_path = tmp_path / "in.txt"
    in_path.write_text("1 1 4 7\n")
    assert main([str(in_path), str(tmp_path / "out.txt"), "--strict"]) == 1


def test_missing_input_is_fatal(tmp_path, capsys):
    assert main([str(tmp_path / "missing.txt"), str(tmp_path / "out.txt")]) == 1
    assert "Error: read_problem" in capsys.readouterr().out


def test_missing_kernel_source(tmp_path, input_file, capsys):
    pytest.importorskip("pyopencl")
    in_path, _, _ = input_file
    rc = main([str(in_path), str(tmp_path / "out.txt"), "--backend", "opencl",
               "--kernels", str(tmp_path / "missing.cl")])
    assert rc == 1
    assert "Error:" in capsys.readouterr().out
    assert not (tmp_path / "out.txt").exists()


def test_device_lost_during_release(tmp_path, input_file, monkeypatch, capsys):
    """A stage failure followed by a failing release still exits 1 with messages."""
    from tiled_winograd import DispatchError
    from tiled_winograd.runtime import TorchRuntime

    def finish(self, queue):
        raise DispatchError("finish", "device lost")

    def release(self, ctx):
        raise RuntimeError("device lost (sticky)")

    monkeypatch.setattr(TorchRuntime, "finish", finish)
    monkeypatch.setattr(TorchRuntime, "release", release)
    in_path, _, _ = input_file
    out_path = tmp_path / "out.txt"

    assert main([str(in_path), str(out_path), "--device", "cpu"]) == 1
    out = capsys.readouterr().out
    assert "Error: finish: device lost" in out
    assert "Error: release: device lost (sticky)" in out
    assert not out_path.exists()


def test_release_failure_after_successful_run(tmp_path, input_file, monkeypatch, capsys):
    from tiled_winograd import DispatchError
    from tiled_winograd.runtime import TorchRuntime

    def release(self, ctx):
        raise DispatchError("release", "device lost")

    monkeypatch.setattr(TorchRuntime, "release", release)
    in_path, _, _ = input_file
    assert main([str(in_path), str(tmp_path / "out.txt"), "--device", "cpu"]) == 1
    assert "Error: release: device lost" in capsys.readouterr().out
