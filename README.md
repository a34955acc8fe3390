# chatlog

Building blocks for tools that read and organise chat history data.
The package is a library of separate modules.

## Modules

- **`chatlog.timeutil`**: time expressions and time ranges.
  `parse_time` returns a timezone-aware `datetime` together with a
  `TimeGranularity`; `time_of` returns only the `datetime`. Accepted forms:
  Unix timestamps in seconds, dates (`20200101`, `2020-01-01`), dates with a
  time (`2020-01-01/12:34`), `200601021504`, `20200101120000`, RFC 3339
  (`2020-01-01T12:00:00Z`, also without seconds), years (`2020`), months
  (`202001`, `2020-01`), quarters (`2020Q1`), relative times (`5h-ago`,
  `3d-ago`, `1w-ago`, `1m-ago`, `1y-ago`, or a duration such as `90m-ago`)
  and the words `now`, `today`, `yesterday`, `this-week`, `last-week`,
  `this-month`, `last-month`, `this-year`, `last-year` and `all`.
  Wall-clock forms are read in the local timezone.
  `time_range_of` returns an inclusive `(start, end)` pair. It accepts the
  same inputs, widening a single point to the day, month, quarter or year it
  names, plus `a~b`, `a,b`, `a to b` (swapped into order when reversed),
  `last-7d`, `last-4w`, `last-3m`, `last-1y` and `all`.
  Unrecognised input raises `ValueError`.
- **`chatlog.fsutil`**: `find_files_with_patterns` lists the files whose
  names match a regular expression, optionally recursively;
  `default_work_dir` gives the default working directory, optionally for
  one account; `get_dir_size` totals a directory tree and formats it;
  `byte_count_si` formats byte counts in SI units; `prepare_dir` makes sure
  a directory exists, raising `NotADirectoryError` if a file is in the way.
- **`chatlog.strutil`**: `is_normal_string` (valid UTF-8 and printable),
  `must_any_to_int` (integer from a value's text, or 0), `is_numeric` and
  `split_int64_to_two_int32`.
- **`chatlog.compress`**: `lz4_decompress` for raw LZ4 blocks (output at
  most four times the input) and `zstd_decompress` for one or more
  Zstandard frames. Both raise `ValueError` on bad input.
- **`chatlog.dat2img`**: decodes image `.dat` files, both the XOR-masked
  kind and the v4 kind with an AES-ECB head, plain middle and XOR tail.
  `DatDecoder.decode` returns the image bytes and an extension
  (`jpg`, `png`, `gif`, `tiff` or `bmp`); `decode_v4` handles v4 data
  directly; `scan_and_set_xor_key` learns the v4 XOR key from a `*_t.dat`
  thumbnail under a directory. `dat_to_image` decodes with the default key.
  `calculate_xor_key_v4` and `decrypt_aes_ecb` are exposed as well.
  Failures raise `DatDecodeError`, a `ValueError`.
- **`chatlog.config`**: `ConfigManager(name, config_type="", path="")`
  keeps JSON settings in a directory (by default `~/.<name>`, created if
  missing). `load` reads `<name>.json` into a dataclass, creating the file
  when it does not exist; `load_file` reads a given file; `set` stores a
  dotted key and writes the file back; `reset` clears it; `settings`
  returns a copy of everything. Errors are `ConfigError`,
  `InvalidDirectoryError` and `MissingConfigNameError`.
- **`chatlog.defaults`**: `set_default` fills zero-valued fields of a
  dataclass instance from the `"default"` entry in each field's metadata
  (simple values parsed from the string, nested dataclasses, lists, dicts
  and optional fields from JSON); `set_default_tag` changes the metadata key.
- **`chatlog.appver`**: `load_app_info` returns an `AppInfo`. On macOS the
  version and copyright come from the bundle's `Info.plist`, read with
  `parse_info_plist`; on other systems only the file path is filled in.
- **`chatlog.version`**: `get_more(include_modules)` returns a one-line
  version summary, or indented build details.
- **`chatlog.filecopy`**: `TempCopyManager.get_temp_copy` returns a private
  copy of a file that another program may hold open, reusing it until the
  original changes. Superseded copies are deleted after a delay by
  background threads; `cleanup_temp_files` schedules stray copies for
  deletion and `save_mappings` / `load_mappings` persist the mapping between
  runs. Stop the threads with `close()` or a `with` block.
- **`chatlog.filegroup`** and **`chatlog.filemonitor`**: a `FileGroup`
  selects files by root directory, name pattern and blacklist and calls its
  callbacks, each in its own thread, with a `FileEvent` (`name`, `op` as
  an `EventOp`). A `FileMonitor` watches the groups' directories, adding new
  ones as they appear, and forwards changes. Errors raise `FileMonitorError`.

## Examples

```python
from chatlog.fsutil import byte_count_si

byte_count_si(999)     # "999 B"
byte_count_si(1500)    # "1.5 kB"
```

```python
from chatlog.timeutil import time_of, time_range_of

time_of("2020Q2")                       # 2020-04-01 00:00, local time
time_range_of("2020-01")                # all of January 2020
time_range_of("2020-01-31~2020-01-01")  # swapped into order
```

```python
from pathlib import Path

from chatlog.dat2img import DatDecoder

decoder = DatDecoder()
decoder.scan_and_set_xor_key("attachments")
image, ext = decoder.decode(Path("attachments/photo.dat").read_bytes())
```

```python
from chatlog.filemonitor import FileMonitor

monitor = FileMonitor()
group = monitor.create_group("db", "data", r".*\.db$", [])
group.add_callback(lambda event: print(event.name, event.op))
monitor.start()
# ...
monitor.stop()
```

## What it does not do

The package has no command-line program. It does not open or read chat
databases, does not convert voice messages, and on systems other than
macOS `load_app_info` does not read version details from the binary.

## Tests

The tests use pytest, installed with the `test` extra:

```
pip install -e .[test]
pytest
```