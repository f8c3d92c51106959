"""Command-line interface for MetaStrip."""

import argparse
import os
import shutil
import sys
import threading
import time
from typing import List, Optional

import orjson
from tqdm import tqdm

from metastrip import __version__
from metastrip.core.bulk import BulkProcessor
from metastrip.core.errors import MetaStripError
from metastrip.core.exiftool import is_exiftool_available
from metastrip.core.logger import create_logger, write_summary
from metastrip.core.metadata import (
    read_metadata, remove_sidecar, remove_tags_by_key, set_tag, write_metadata,
)
from metastrip.core.models import (
    ExportTo, OperationResult, OutputMode, Overwrite, PhotoEntry, PresetRule, ProgressEvent,
    RemoveAllExcept, RemoveCategory, RemoveTag, SetTag, StripPreset, Suffix, Text,
    USER_VALUE_PLACEHOLDER, category_from_token, is_supported,
)
from metastrip.core.presets import next_preset_id, preset_by_id, preset_by_name
from metastrip.core.scanner import scan_directory
from metastrip.core.settings import Settings
from metastrip.core.utils import normalize_path


DESCRIPTION = """MetaStrip

Inspect, edit and strip the metadata of photos.

Single photos are edited in place: a JSON sidecar (<file>.metastrip.json)
keeps the full tag model and the EXIF embedded in JPEG, PNG, WebP and HEIC
files is rewritten on a best-effort basis.

The strip command applies a preset to many photos in parallel. Custom
presets and settings live in the config directory (see the presets and
config commands).
"""


def create_progress_callback(total: int, desc: str = "Stripping"):
    """Create a tqdm-based progress callback for bulk runs.

    Returns:
        Tuple of (callback function, tqdm instance).
    """
    pbar = tqdm(total=total, desc=desc, unit="photo")

    terminal_width = shutil.get_terminal_size().columns
    max_desc_width = max(20, min(60, terminal_width - 50))

    def callback(event: ProgressEvent):
        message = event.filename
        if len(message) > max_desc_width:
            message = message[:max_desc_width - 3] + "..."
        pbar.total = event.total
        pbar.n = event.current
        pbar.set_description(message)
        pbar.refresh()

    return callback, pbar


def _resolve_preset(presets: List[StripPreset], name: str) -> Optional[StripPreset]:
    preset = preset_by_name(presets, name)
    if preset is None and name.strip().isdigit():
        preset = preset_by_id(presets, int(name))
    return preset


def _needs_user_value(preset: StripPreset) -> bool:
    return any(
        isinstance(rule, SetTag) and USER_VALUE_PLACEHOLDER in rule.value
        for rule in preset.rules
    )


def collect_photos(paths: List[str], recursive: bool) -> List[str]:
    """Expand files and directories into a de-duplicated list of photos."""
    found: List[str] = []
    seen = set()

    for raw in paths:
        path = normalize_path(raw)
        if os.path.isdir(path):
            candidates = scan_directory(path, recursive=recursive)
        elif os.path.isfile(path) and is_supported(path):
            candidates = [path]
        else:
            print(f"Skipping: {path}")
            candidates = []

        for candidate in candidates:
            if candidate not in seen:
                seen.add(candidate)
                found.append(candidate)

    return found


def run_show(path: str, as_json: bool) -> int:
    metadata = read_metadata(normalize_path(path))

    if as_json:
        print(orjson.dumps(metadata.to_json(), option=orjson.OPT_INDENT_2).decode("utf-8"))
        return 0

    if metadata.total_tag_count() == 0:
        print("No metadata.")
        return 0

    for tag in metadata.all_tags():
        marker = " (marked)" if tag.marked_for_removal else ""
        print(f"{tag.category.label:<12} {tag.key:<42} {tag.value}{marker}")
    return 0


def run_set(path: str, key: str, value: str, write_embedded: bool) -> int:
    set_tag(normalize_path(path), key, Text(value), write_embedded=write_embedded)
    print(f"Set {key.strip()} = {value}")
    return 0


def run_remove(path: str, keys: List[str], write_embedded: bool) -> int:
    path = normalize_path(path)
    metadata = read_metadata(path)
    removed = remove_tags_by_key(metadata, keys)
    if removed:
        write_metadata(path, metadata, write_embedded=write_embedded)
    print(f"Removed {removed} tag(s)")
    return 0


def run_presets(settings: Settings) -> int:
    for preset in settings.all_presets():
        kind = "built-in" if preset.is_builtin else "custom"
        print(f"{preset.id:>3}  {preset.name:<18} {preset.description} [{kind}]")
    return 0


def parse_rule(text: str) -> PresetRule:
    """Parse a preset rule given on the command line.

    Accepted forms:
        RemoveAll, RemoveGps, RemoveThumbnail
        RemoveCategory=camera
        RemoveTag=Exif.Image.Make
        RemoveAllExcept=camera,Exif.Image.Artist
        SetTag=Exif.Image.Copyright:{user_value}

    Raises:
        argparse.ArgumentTypeError: If the rule cannot be parsed.
    """
    name, _, arg = text.strip().partition("=")
    arg = arg.strip()
    try:
        if name == "RemoveCategory":
            category = category_from_token(arg)
            if category is None:
                raise ValueError(f"unknown category: {arg!r}")
            return RemoveCategory(category)
        if name == "RemoveTag":
            if not arg:
                raise ValueError("RemoveTag needs a tag key")
            return RemoveTag(arg)
        if name == "RemoveAllExcept":
            return RemoveAllExcept(tuple(k.strip() for k in arg.split(",") if k.strip()))
        if name == "SetTag":
            key, sep, value = arg.partition(":")
            if not sep or not key.strip():
                raise ValueError("SetTag needs KEY:VALUE")
            return SetTag(key.strip(), value)
        if arg:
            raise ValueError(f"{name} takes no argument")
        return PresetRule.from_json(name)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def run_presets_add(name: str, rules: List[PresetRule], description: str, settings: Settings) -> int:
    name = name.strip()
    presets = settings.all_presets()
    if not name:
        print("Error: preset name is empty")
        return 1
    if preset_by_name(presets, name) is not None:
        print(f"Error: preset already exists: {name}")
        return 1

    preset = StripPreset(next_preset_id(presets), name, description, "", list(rules))
    settings.save_custom_presets(settings.custom_presets() + [preset])
    print(f"Added preset {preset.id}: {preset.name}")
    return 0


def run_presets_remove(name: str, settings: Settings) -> int:
    preset = _resolve_preset(settings.all_presets(), name)
    if preset is None:
        print(f"Error: unknown preset: {name}")
        return 1
    if preset.is_builtin:
        print(f"Error: cannot remove built-in preset: {preset.name}")
        return 1

    settings.save_custom_presets([p for p in settings.custom_presets() if p.id != preset.id])
    print(f"Removed preset {preset.id}: {preset.name}")
    return 0


def run_reset(path: str) -> int:
    """Drop the sidecar so the photo's embedded metadata is read again."""
    path = normalize_path(path)
    if remove_sidecar(path):
        print(f"Removed sidecar of {path}")
    else:
        print(f"No sidecar for {path}")
    return 0


_TRUE_WORDS = ("true", "yes", "on", "1")
_FALSE_WORDS = ("false", "no", "off", "0")


def _parse_setting(key: str, raw: str):
    """Convert a command-line string to the type of the setting's default.

    Raises:
        ValueError: If the string does not fit the setting.
    """
    default = Settings.DEFAULT_SETTINGS[key]
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        raise ValueError(f"{key} expects true or false, got {raw!r}")
    if key == "max_workers":
        if raw.strip().lower() in ("", "none", "auto"):
            return None
        workers = int(raw)
        if workers < 1:
            raise ValueError(f"{key} must be at least 1")
        return workers
    return raw


def _format_setting(value) -> str:
    return orjson.dumps(value).decode("utf-8")


def run_config(settings: Settings, key: Optional[str], value: Optional[str]) -> int:
    """Show all settings, show one, or change one and save."""
    if key is None:
        for name in Settings.DEFAULT_SETTINGS:
            print(f"{name:<16} {_format_setting(settings.get(name))}")
        print(f"{'exiftool':<16} {'available' if is_exiftool_available() else 'not found'}")
        print(f"\nConfig directory: {settings.config_dir}")
        return 0

    if key not in Settings.DEFAULT_SETTINGS:
        print(f"Error: unknown setting: {key}")
        return 1

    if value is None:
        print(_format_setting(settings.get(key)))
        return 0

    try:
        parsed = _parse_setting(key, value)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    settings.set(key, parsed)
    settings.save()
    print(f"{key} = {_format_setting(parsed)}")
    return 0


def _output_mode(parsed: argparse.Namespace, settings: Settings) -> OutputMode:
    if parsed.overwrite:
        return Overwrite()
    export_dir = parsed.export_to or ""
    if export_dir:
        return ExportTo(normalize_path(export_dir))
    return Suffix(parsed.suffix or settings.get("default_suffix") or "_clean")


def run_strip(parsed: argparse.Namespace, settings: Settings) -> int:
    """Bulk-apply a preset.

    Returns:
        0 on full success, 2 if any photo failed, 130 when interrupted,
        1 for usage errors.
    """
    preset = _resolve_preset(settings.all_presets(), parsed.preset)
    if preset is None:
        print(f"Error: unknown preset: {parsed.preset}")
        return 1

    if _needs_user_value(preset):
        value = parsed.value if parsed.value is not None else settings.get("user_value", "")
        preset = preset.with_user_value(value)

    paths = collect_photos(parsed.paths, parsed.recursive)
    if not paths:
        print("Error: no photos to process")
        return 1

    mode = _output_mode(parsed, settings)
    photos = [PhotoEntry.from_path(i, path) for i, path in enumerate(paths, start=1)]

    log_dir = parsed.log_dir or settings.get("log_dir") or ""
    write_embedded = bool(settings.get("write_embedded", True)) and not parsed.no_embedded

    print(f"Applying '{preset.name}' to {len(photos)} photo(s)...")

    cancel_event = threading.Event()
    outcome: List[List[OperationResult]] = []
    callback, pbar = create_progress_callback(len(photos))
    interrupted = False
    start = time.time()

    with create_logger(log_dir, enabled=bool(log_dir)) as oplog:
        processor = BulkProcessor(
            max_workers=parsed.workers or settings.get("max_workers"),
            logger=oplog,
            write_embedded=write_embedded,
        )

        def work():
            outcome.append(processor.process(photos, preset, mode,
                                             on_progress=callback, cancel_event=cancel_event))

        # Processing runs off the main thread so Ctrl+C can set the cancel event.
        worker = threading.Thread(target=work, daemon=True)
        worker.start()
        try:
            while worker.is_alive():
                worker.join(0.2)
        except KeyboardInterrupt:
            interrupted = True
            cancel_event.set()
            pbar.write("\nInterrupted! Finishing photos already in progress...")
            worker.join()
        finally:
            pbar.close()

    results = outcome[0] if outcome else []
    elapsed = time.time() - start
    summary = BulkProcessor.summarize(len(photos), results)

    failures = [r for r in results if not r.success]
    if failures:
        print("\nErrors:")
        shown = failures if parsed.verbose else failures[:10]
        for result in shown:
            print(f"  {result.output_path}: {result.error}")
        if len(failures) > len(shown):
            print(f"  ... and {len(failures) - len(shown)} more")

    if parsed.verbose:
        for result in results:
            if result.success:
                print(f"  wrote {result.output_path}")

    print("\nFinished!")
    print(f"Succeeded: {summary.succeeded}")
    print(f"Failed:    {summary.failed}")
    if summary.cancelled:
        print(f"Cancelled: {summary.cancelled}")
    print(f"Time used: {elapsed:.1f} seconds")

    if log_dir:
        report = write_summary(log_dir, preset.name, summary, results, elapsed)
        print(f"Summary written to {report}")

    if interrupted:
        return 130
    if summary.failed > 0:
        return 2
    return 0


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="metastrip",
        description=DESCRIPTION,
        formatter_class=argparse.RawTextHelpFormatter
    )

    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    parser.add_argument(
        "--config-dir",
        help="Directory holding settings.json and presets.json",
        type=str,
        default=None
    )

    parser.add_argument(
        "--no-embedded",
        help="Only write the JSON sidecar, leave embedded EXIF untouched",
        action="store_true"
    )

    sub = parser.add_subparsers(dest="command", metavar="command")
    sub.required = True

    show = sub.add_parser("show", help="Print the metadata of a photo")
    show.add_argument("path", help="Photo to inspect")
    show.add_argument("--json", help="Print the sidecar JSON form", action="store_true")

    set_cmd = sub.add_parser("set", help="Set a text tag on a photo")
    set_cmd.add_argument("path", help="Photo to edit")
    set_cmd.add_argument("key", help="Tag key, e.g. Exif.Image.Artist")
    set_cmd.add_argument("value", help="New text value")

    remove = sub.add_parser("remove", help="Remove tags from a photo")
    remove.add_argument("path", help="Photo to edit")
    remove.add_argument("keys", nargs="+", help="Tag keys to remove")

    presets = sub.add_parser("presets", help="List, add or remove presets")
    presets_sub = presets.add_subparsers(dest="presets_command", metavar="action")

    add = presets_sub.add_parser("add", help="Save a custom preset")
    add.add_argument("name", help="Name of the new preset")
    add.add_argument(
        "-r", "--rule",
        dest="rules",
        help="Rule to apply, repeatable: RemoveAll, RemoveGps, RemoveThumbnail,\n"
             "RemoveCategory=CATEGORY, RemoveTag=KEY, RemoveAllExcept=A,B,\n"
             "SetTag=KEY:VALUE",
        action="append",
        type=parse_rule,
        required=True
    )
    add.add_argument("-d", "--description", help="Short description", type=str, default="")

    drop = presets_sub.add_parser("remove", help="Delete a custom preset")
    drop.add_argument("name", help="Preset name or id")

    reset = sub.add_parser("reset", help="Delete a photo's sidecar so its embedded EXIF is read again")
    reset.add_argument("path", help="Photo to reset")

    config = sub.add_parser("config", help="Show or change settings")
    config.add_argument("key", nargs="?", default=None, help="Setting to show or change")
    config.add_argument("value", nargs="?", default=None, help="New value")

    strip = sub.add_parser("strip", help="Apply a preset to many photos")
    strip.add_argument("paths", nargs="+", help="Photos and/or directories")
    strip.add_argument("-p", "--preset", required=True, help="Preset name or id")

    output = strip.add_mutually_exclusive_group()
    output.add_argument("--overwrite", help="Modify the photos in place", action="store_true")
    output.add_argument("--export-to", help="Write processed copies into this directory", type=str)
    output.add_argument("--suffix", help="Write copies named <name><suffix>.<ext> (default: _clean)", type=str)

    strip.add_argument("-w", "--workers", help="Number of worker threads", type=int, default=None)
    strip.add_argument("--value", help="Value substituted for {user_value} in presets", type=str, default=None)
    strip.add_argument("-r", "--recursive", help="Descend into subdirectories", action="store_true")
    strip.add_argument("--log-dir", help="Write an operation log and summary here", type=str, default=None)
    strip.add_argument("-v", "--verbose", help="List every processed photo", action="store_true")

    return parser.parse_args(args)


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for CLI.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parsed = parse_args(args)
    settings = Settings(parsed.config_dir)
    write_embedded = bool(settings.get("write_embedded", True)) and not parsed.no_embedded

    try:
        if parsed.command == "show":
            return run_show(parsed.path, parsed.json)
        if parsed.command == "set":
            return run_set(parsed.path, parsed.key, parsed.value, write_embedded)
        if parsed.command == "remove":
            return run_remove(parsed.path, parsed.keys, write_embedded)
        if parsed.command == "presets":
            if parsed.presets_command == "add":
                return run_presets_add(parsed.name, parsed.rules, parsed.description, settings)
            if parsed.presets_command == "remove":
                return run_presets_remove(parsed.name, settings)
            return run_presets(settings)
        if parsed.command == "reset":
            return run_reset(parsed.path)
        if parsed.command == "config":
            return run_config(settings, parsed.key, parsed.value)
        return run_strip(parsed, settings)
    except MetaStripError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
