# cachecopy

`cachecopy` copies a directory tree using several worker threads at once. For each copied file it records three things in a cache: the size, an xxHash64 checksum of the contents and the time of recording. On later runs it skips files whose size and hash match the cache and whose copy is still present. It can also mirror the source by deleting extra files from the destination. In validation mode it compares every source file with its copy.

## Installation

```
pip install .
```

This installs the `cachecopy` command. It depends on `psutil`, which supplies the CPU and memory line of the live display, and on `rich`, which draws that display.

## Usage

```
cachecopy SRC DST [options]
```

`SRC` and `DST` are the first two arguments that do not start with `-`. They may appear before, after or between the options. If one of them is missing, the help text is printed and nothing is copied.

- If `SRC` ends with the path separator, the *contents* of `SRC` are copied into `DST`.
- If it does not, `SRC` itself is copied into `DST/<name of SRC>`.

`--mirror` applies the same rule when it decides which destination directory to clean.

### Options

Each option works with one or two leading dashes, for example `-workers 8` or `--workers 8`. A switch given on its own means true. You may also give it a value, as in `--auto-clean=false` or `--mirror true`. The accepted values are `1`, `t`, `true` and `0`, `f`, `false`, in lower, title or upper case.

| Option | Meaning |
| --- | --- |
| `--workers N` | Number of copy worker threads (default: number of CPUs) |
| `--clear-cache` | Delete this pair's cache file before starting |
| `--mirror` | Delete files and directories in the destination that have no counterpart in the source |
| `--no-cache` | Ignore the cache, copy every file and record nothing |
| `--max-cache-age DAYS` | Drop cache entries recorded more than this many days ago (default 90) |
| `--verbose LEVEL` | 0 shows progress and errors; 1 adds files over 1000 MB; 2 adds every file; 3 adds cache details |
| `--log-path FILE` | Also append the log lines to this file |
| `--buffer-size SIZE` | Copy buffer size: a byte count, or a number followed by `B`, `KB` or `MB`, case-insensitive (default `4MB`) |
| `--no-tui` | Print to the terminal with a `\r`-updated progress line instead of the live display |
| `--validate` | Compare size and content hash of each source file with its destination, and copy only the ones that differ |
| `--auto-clean` | Drop cache entries whose source file no longer exists (default true; turn off with `--auto-clean=false`) |

If the number of workers times the buffer size is more than 2 GB, a warning is printed.

### What a run does

1. Prints the command and the path of the cache file to standard error.
2. With `--clear-cache`, deletes the cache file.
3. Loads the cache. If auto-clean is on, it removes entries whose source file is missing. It then removes entries older than `--max-cache-age`. If entries remain and none of them is recent, it deletes the cache file.
4. With `--mirror`, deletes extra files and directories under the destination.
5. Walks the source and creates every directory in the destination.
6. Copies the files with the worker threads and shows progress. Each copied file is flushed and `fsync`ed. In the cache, the recorded time is the time the file was copied or validated.

By default the live display shows three things: a CPU and memory line, the most recent log lines and a progress line. The display closes when the copy finishes.

The command returns exit status 0 on success. It returns 1 in these cases:

- the buffer size is invalid;
- the cache file cannot be deleted;
- mirroring fails;
- the source cannot be walked;
- a copy fails fatally, for example when a file cannot be opened, created, synced or written.

A file that cannot be `stat`ed during copying is logged and skipped.

### Examples

```
cachecopy /source/folder /destination/folder
cachecopy /source/folder/ /destination/folder --mirror
cachecopy /source /dest --workers 8 --buffer-size 8MB --verbose 2
cachecopy /source /dest --validate --no-cache --verbose 3
cachecopy /source /dest --clear-cache --mirror --log-path copy.log --no-tui
```

## Cache

Cache files are kept in `.cache_cache_copy/` in the current directory. The command creates this directory on every run. Each source and destination pair has its own file, `<src name>_to_<dst name>_<hash>.json`. The hash is the first 8 hex digits of a SHA-256 over the two absolute paths. The names in the file name have `:` and spaces replaced by `_`. `cachecopy.cache.local_cache_file` returns that path. The file is minified JSON that maps each relative path to `{"Size": ..., "Hash": ..., "ModTime": ...}`.

## Library use

The modules can be used on their own:

- `cachecopy.hashing`: `XXH64` (streaming, with `update`, `intdigest` and `hexdigest`), `xxh64(data, seed=0)` and `file_hash(path)`.
- `cachecopy.helpers`: `parse_size`, which raises `ValueError` on bad input; `human_size`; `render_progress_bar`; `open_with_retry` and `create_with_retry`, which retry on `EINTR`, `EAGAIN`, `EIO` and `EBUSY`; `exists`; `monitor_line`; `timestamp`.
- `cachecopy.cache`: `GlobalCache`, which is thread-safe, has a `lock` for grouping calls and offers `get`, `update`, `remove`, `keys`, `clear`, `clean_up_missing_files` and `save`; also `CacheEntry` and `local_cache_file`.
- `cachecopy.workers`: `run_copy_workers` and `delete_extra_files`. Both raise `CopyError` on fatal failures.
- `cachecopy.copier`: `Copier`, a sequential copier that consults the cache and has suffix include and exclude filters, and `copy_file(src, dst, buf_size)`.
- `cachecopy.logger`: `Logger`, which writes timestamped `[INFO]` and `[ERROR]` lines to a file or to standard output. It can be used as a context manager.

```python
from cachecopy.cache import GlobalCache
from cachecopy.hashing import file_hash, xxh64
from cachecopy.helpers import human_size, parse_size

cache = GlobalCache("copy-cache.json")
cache.update("a.txt", 12, file_hash("src/a.txt"), 0)
cache.save()

xxh64(b"")            # 17241709254077376921
parse_size("4MB")     # 4194304
human_size(4194304)   # '4.00 MB'
```