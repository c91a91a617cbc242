"""Text input/output format."""

import numpy as np
import pytest

from tiled_winograd import FileError, InvalidShapeError
from tiled_winograd.tensor_io import (
    format_output,
    read_output,
    read_problem,
    write_output,
    write_problem,
)


def test_read_problem(tmp_path):
    path = tmp_path / "in.txt"
    filters = np.arange(2 * 1 * 9, dtype=np.float32).reshape(2, 1, 3, 3)
    image = np.linspace(-1, 1, 16, dtype=np.float32).reshape(1, 4, 4)
    write_problem(path, filters, image)

    problem = read_problem(path)
    assert (problem.shape.K, problem.shape.C, problem.shape.H, problem.shape.W) == (2, 1, 4, 4)
    np.testing.assert_array_equal(problem.filters, filters)
    np.testing.assert_allclose(problem.image, image)
    assert problem.geometry.P == 1


def test_free_format_whitespace(tmp_path):
    path = tmp_path / "in.txt"
    values = " ".join(["0"] * 9) + "\n" + "\n\n".join(str(float(v)) for v in range(24))
    path.write_text("1 1\n4   6\n" + values)
    problem = read_problem(path)
    assert problem.image.shape == (1, 4, 6)
    assert problem.image[0, 1, 0] == 6.0  # row stride is W


def test_odd_height_rejected_before_data(tmp_path):
    path = tmp_path / "in.txt"
    path.write_text("1 1 5 4\n1 2 3\n")
    with pytest.raises(InvalidShapeError):
        read_problem(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileError):
        read_problem(tmp_path / "nope.txt")


@pytest.mark.parametrize("text", [
    "",
    "1 1 4",
    "1 one 4 4",
    "1 1 4 4\n" + "0 " * 9 + "0 " * 15,
    "1 1 4 4\n" + "0 " * 9 + "x " * 16,
])
def test_malformed_input(tmp_path, text):
    path = tmp_path / "in.txt"
    path.write_text(text)
    with pytest.raises(FileError):
        read_problem(path)


def test_output_format():
    Y = np.array([[[1.0, -2.5], [0.125, 3.14159]]], dtype=np.float32)
    text = format_output(Y, C=3)
    lines = text.split("\n")
    assert lines[0] == "1 3 2 2"
    assert lines[1] == ""
    assert lines[2] == "   1.0000   -2.5000"
    assert lines[3] == "   0.1250   3.1416"


def test_blank_line_per_channel():
    Y = np.zeros((3, 2, 2), dtype=np.float32)
    lines = format_output(Y, C=1).rstrip("\n").split("\n")
    assert len(lines) == 1 + 3 * (1 + 2)
    assert [i for i, l in enumerate(lines) if l == ""] == [1, 4, 7]


def test_output_round_trip(tmp_path):
    rng = np.random.default_rng(0)
    Y = (rng.standard_normal((4, 6, 10)) * 50).astype(np.float32)
    path = tmp_path / "out.txt"
    write_output(path, Y, C=7)
    K, C, parsed = read_output(path)
    assert (K, C) == (4, 7)
    assert parsed.shape == Y.shape
    np.testing.assert_allclose(parsed, Y, atol=5e-5 + 1e-6 * np.abs(Y).max())
