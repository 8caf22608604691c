import gzip
import math
import pathlib


class BufferedTextReader:
    def __init__(self, *, file_path: str | pathlib.Path, maximum_buffer_size_in_bytes: int = 10**9):
        """
        Lazily read a text file (optionally gzip-compressed) into RAM using buffers of a specified size.

        Parameters
        ----------
        file_path : string or pathlib.Path
            The path to the text file to be read.
            Files ending in '.gz' are decompressed on the fly, as produced by rotation of web server logs.
        maximum_buffer_size_in_bytes : int, default: 1 GB
            The theoretical maximum amount of RAM (in bytes) to be used by the BufferedTextReader object.
        """
        self.file_path = pathlib.Path(file_path)
        self.maximum_buffer_size_in_bytes = maximum_buffer_size_in_bytes

        # The actual amount of bytes to read per iteration is 3x less than theoretical maximum usage
        # due to decoding and handling
        self.buffer_size_in_bytes = int(maximum_buffer_size_in_bytes / 3)

        self.is_compressed = self.file_path.suffix == ".gz"
        self.total_file_size = self.file_path.stat().st_size

        self._io = None
        self._remainder = b""
        self._is_exhausted = False

    def __len__(self) -> int:
        """Number of buffers to expect; only an underestimate for compressed files."""
        return max(math.ceil(self.total_file_size / self.buffer_size_in_bytes), 1)

    def __iter__(self):
        return self

    def __next__(self) -> list[str]:
        """Retrieve the next buffer from the file, or raise StopIteration if the file is exhausted."""
        if self._is_exhausted:
            raise StopIteration

        if self._io is None:
            if self.is_compressed:
                self._io = gzip.open(filename=self.file_path, mode="rb")
            else:
                self._io = open(file=self.file_path, mode="rb")

        # Never ask for (and allocate) more than an uncompressed file can hold
        read_size_in_bytes = self.buffer_size_in_bytes
        if not self.is_compressed:
            read_size_in_bytes = min(read_size_in_bytes, self.total_file_size + 1)

        new_bytes = self._io.read(read_size_in_bytes)
        intermediate_bytes = self._remainder + new_bytes

        # Check if we are at the end of the file
        if len(new_bytes) < read_size_in_bytes:
            self.close()
            self._remainder = b""
            return intermediate_bytes.decode(encoding="utf-8", errors="replace").splitlines()

        last_line_break_index = intermediate_bytes.rfind(b"\n")
        if last_line_break_index == -1:
            self.close()
            raise ValueError(
                f"BufferedTextReader encountered a line in '{self.file_path}' that exceeds the buffer size! "
                "Try increasing the `maximum_buffer_size_in_bytes` to account for this line."
            )

        # The last line split by the intermediate buffer may or may not be incomplete; carry it to the next buffer
        self._remainder = intermediate_bytes[last_line_break_index + 1 :]
        buffer = intermediate_bytes[: last_line_break_index + 1].decode(encoding="utf-8", errors="replace")

        return buffer.splitlines()

    def close(self) -> None:
        if self._io is not None:
            self._io.close()
            self._io = None
        self._is_exhausted = True
