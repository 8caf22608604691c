import gzip
import pathlib
import sys

import py
import pytest

import podcast_download_counter


@pytest.fixture(scope="session")
def large_text_file_path(tmp_path_factory: pytest.TempPathFactory) -> pathlib.Path:
    """Fixture for testing buffering on a large text file."""
    tmp_path = pathlib.Path(tmp_path_factory.mktemp("large_text_file"))

    # Generate a test file ~6 MB in total size
    # Content does not matter, each line is ~60 bytes
    test_file_path = tmp_path / "large_text_file.txt"
    fill_string = "a" * 60 + "\n"
    content = [fill_string for _ in range(10**5)]
    with open(file=test_file_path, mode="w") as test_file:
        test_file.writelines(content)

    return test_file_path


@pytest.fixture(scope="session")
def compressed_text_file_path(tmp_path_factory: pytest.TempPathFactory) -> pathlib.Path:
    """Rotated access logs are usually gzipped."""
    tmp_path = pathlib.Path(tmp_path_factory.mktemp("compressed_text_file"))

    test_file_path = tmp_path / "access.log.2.gz"
    content = [f"line {index}\n" for index in range(10**5)]
    with gzip.open(filename=test_file_path, mode="wt") as test_file:
        test_file.writelines(content)

    return test_file_path


@pytest.fixture(scope="session")
def single_line_text_file_path(tmp_path_factory: pytest.TempPathFactory) -> pathlib.Path:
    """For testing the ValueError case during iteration."""
    tmp_path = pathlib.Path(tmp_path_factory.mktemp("single_line_text_file"))

    # Generate test file ~3 MB in total size, consisting of only a single line
    test_file_path = tmp_path / "single_line_text_file.txt"
    with open(file=test_file_path, mode="w") as test_file:
        test_file.write("a" * 3 * 10**6)

    return test_file_path


def test_buffered_text_reader(large_text_file_path: pathlib.Path):
    """Basic test of the BufferedTextReader class."""
    maximum_buffer_size_in_bytes = 10**6  # 1 MB
    buffered_text_reader = podcast_download_counter.BufferedTextReader(
        file_path=large_text_file_path,
        maximum_buffer_size_in_bytes=maximum_buffer_size_in_bytes,
    )

    assert iter(buffered_text_reader) is buffered_text_reader, "BufferedTextReader object is not iterable!"

    number_of_lines = 0
    for buffer_index, buffer in enumerate(buffered_text_reader):
        assert isinstance(buffer, list), "BufferedTextReader object did not load a buffer as a list!"
        assert (
            sys.getsizeof(buffer) <= buffered_text_reader.buffer_size_in_bytes
        ), "BufferedTextReader object loaded a buffer exceeding the threshold!"
        assert all(line == "a" * 60 for line in buffer), "BufferedTextReader object split a line across buffers!"

        number_of_lines += len(buffer)

    assert buffer_index == 18, "BufferedTextReader object did not load the correct number of buffers!"
    assert number_of_lines == 10**5
    assert len(buffered_text_reader) == 19

    with pytest.raises(StopIteration):
        next(buffered_text_reader)


def test_buffered_text_reader_compressed(compressed_text_file_path: pathlib.Path):
    maximum_buffer_size_in_bytes = 10**5
    buffered_text_reader = podcast_download_counter.BufferedTextReader(
        file_path=compressed_text_file_path,
        maximum_buffer_size_in_bytes=maximum_buffer_size_in_bytes,
    )

    all_lines = [line for buffer in buffered_text_reader for line in buffer]

    assert buffered_text_reader.is_compressed is True
    assert all_lines == [f"line {index}" for index in range(10**5)]


def test_buffered_text_reader_small_file(tmpdir: py.path.local):
    """Files smaller than a single buffer are read in one go, with or without a final line break."""
    test_file_path = pathlib.Path(tmpdir) / "access.log"
    test_file_path.write_text("first\nsecond")

    buffered_text_reader = podcast_download_counter.BufferedTextReader(file_path=test_file_path)

    assert list(buffered_text_reader) == [["first", "second"]]


def test_value_error(single_line_text_file_path: pathlib.Path):
    """Test the ValueError case during iteration of a BufferedTextReader."""
    maximum_buffer_size_in_bytes = 10**6  # 1 MB
    buffered_text_reader = podcast_download_counter.BufferedTextReader(
        file_path=single_line_text_file_path,
        maximum_buffer_size_in_bytes=maximum_buffer_size_in_bytes,
    )
    with pytest.raises(ValueError) as error_info:
        next(buffered_text_reader)

    expected_message = (
        f"BufferedTextReader encountered a line in '{single_line_text_file_path}' that exceeds the buffer size! "
        "Try increasing the `maximum_buffer_size_in_bytes` to account for this line."
    )
    assert str(error_info.value) == expected_message
