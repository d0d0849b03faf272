"""
This module implements the asset compiler, which turns a directory of
static files into a Python module that embeds them. The generated module
can be installed in an AssetRegistry with ``init_embedded_assets()``.

The output only depends on the names and contents of the files, so
compiling the same directory twice gives identical modules.
"""

import os
import base64
import tempfile
import importlib.util

from ._assets import (
    Asset,
    AssetTable,
    CompileError,
    compress_payload,
    compute_etag,
    content_type_for_filename,
    make_header_block,
)


def scan_directory(input_dir):
    """ Get the (sorted) names of the files in the given directory that
    can be embedded: regular files with a known extension. Subdirectories
    are not scanned.
    """
    try:
        with os.scandir(input_dir) as it:
            entries = list(it)
    except OSError as err:
        raise CompileError(f"Could not open directory {input_dir!r}: {err}") from err
    names = []
    for entry in entries:
        if content_type_for_filename(entry.name) is None:
            continue
        if entry.is_file():  # follows symlinks
            names.append(entry.name)
    return sorted(names)


def read_file(filename):
    """ Read the full contents of a file. Raises CompileError on failure.
    """
    try:
        with open(filename, "rb") as f:
            return f.read()
    except OSError as err:
        raise CompileError(f"Failed to read {filename!r}: {err}") from err


def compile_asset(url, raw, mime, *, compress=True, max_age=None):
    """ Create an Asset from the raw bytes of a file. The etag is
    computed from the raw bytes, the content is compressed (unless
    ``compress`` is False).
    """
    etag = compute_etag(raw)
    content = compress_payload(raw, compress)
    header_block = make_header_block(etag, mime, gzipped=compress, max_age=max_age)
    return Asset(url, header_block, content)


def compile_directory(input_dir, url_prefix="/", *, compress=True, max_age=None):
    """ Compile the files in the given directory into an AssetTable. Each
    asset is served at ``url_prefix + filename``.
    """
    url_prefix = url_prefix or "/"
    if not url_prefix.startswith("/"):
        raise CompileError(f"The url prefix must start with '/', got {url_prefix!r}")
    if max_age is not None and not (isinstance(max_age, int) and max_age >= 0):
        raise CompileError("The max_age must be a positive int.")

    assets = []
    for name in scan_directory(input_dir):
        raw = read_file(os.path.join(input_dir, name))
        mime = content_type_for_filename(name)
        asset = compile_asset(
            url_prefix + name, raw, mime, compress=compress, max_age=max_age
        )
        assets.append(asset)
    return AssetTable(assets)


MODULE_HEAD = '''"""
Embedded static assets. This file is generated by wsstatics; do not edit.

Usage::

    import wsstatics
    import {modname}

    registry = wsstatics.AssetRegistry()
    {modname}.init_embedded_assets(registry)
    wsstatics.run(registry)

"""

import base64

from wsstatics import AssetTable

'''

MODULE_TAIL = '''
_table = None


def load_table():
    """ Get the embedded assets as an AssetTable. The contents are decoded
    on the first call.
    """
    global _table
    if _table is None:
        contents = [base64.decodebytes(text.encode()) for text in _CONTENTS]
        _table = AssetTable.from_arrays(URLS, HEADER_BLOCKS, contents, SIZES)
    return _table


def init_embedded_assets(registry):
    """ Install the embedded assets as the active table of the given registry.
    """
    registry.set_active_table(load_table())
'''


def render_module(table, modname="generated_statics", source=None):
    """ Render the Python source code of a module that embeds the given
    asset table.

    The module defines ``ASSET_COUNT``, ``URLS``, ``HEADER_BLOCKS`` and
    ``SIZES``. The contents are stored as base64 text, and only decoded
    when ``load_table()`` or ``init_embedded_assets()`` is called.
    """
    lines = [MODULE_HEAD.replace("{modname}", modname)]
    if source:
        lines.append(f"SOURCE = {source!r}\n")
    lines.append(f"ASSET_COUNT = {table.count:d}\n")

    lines.append("URLS = (")
    lines.extend(f"    {asset.url!r}," for asset in table)
    lines.append(")\n")

    lines.append("HEADER_BLOCKS = (")
    lines.extend(f"    {asset.header_block!r}," for asset in table)
    lines.append(")\n")

    lines.append("SIZES = (")
    lines.extend(f"    {asset.size:d}," for asset in table)
    lines.append(")\n")

    lines.append("_CONTENTS = (")
    for asset in table:
        lines.append(f"    # {asset.url!r}")
        lines.append('    """')
        lines.append(base64.encodebytes(asset.content).decode() + '""",')
    lines.append(")\n")

    lines.append(MODULE_TAIL)
    return "\n".join(lines)


def _write_atomic(filename, data):
    # Write to a temp file and rename, so we never leave a partial file
    dirname = os.path.dirname(os.path.abspath(filename))
    fd, tempname = tempfile.mkstemp(prefix=".wsstatics-", suffix=".tmp", dir=dirname)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tempname, 0o644)
        os.replace(tempname, filename)
    except BaseException:
        os.remove(tempname)
        raise


def compile_to_file(
    input_dir, output, url_prefix="/", *, compress=True, max_age=None
):
    """ Compile the files in ``input_dir`` and write the resulting module
    to ``output``. Returns the AssetTable. Raises CompileError on failure,
    in which case the output file is not touched.
    """
    table = compile_directory(
        input_dir, url_prefix, compress=compress, max_age=max_age
    )
    modname = os.path.splitext(os.path.basename(output))[0]
    source = os.path.basename(os.path.normpath(input_dir))
    text = render_module(table, modname, source)
    try:
        _write_atomic(output, text.encode())
    except OSError as err:
        raise CompileError(f"Could not write {output!r}: {err}") from err
    return table


def load_compiled(filename):
    """ Import a compiled asset module from its filename.
    """
    modname = os.path.splitext(os.path.basename(filename))[0]
    spec = importlib.util.spec_from_file_location(modname, filename)
    if spec is None:
        raise ImportError(f"Cannot load asset module from {filename!r}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module
