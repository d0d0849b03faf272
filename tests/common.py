"""
Common utilities used in our test scripts.
"""

import os
import inspect

from wsstatics import AssetRegistry, AssetTable
from wsstatics._assets import content_type_for_filename
from wsstatics._compiler import compile_asset
from wsstatics.testutils import MockTestServer, ThreadTestServer


def get_backend():
    return os.environ.get("WSSTATICS_SERVER", "mock").lower()


def run_tests(scope):
    for func in list(scope.values()):
        if callable(func) and func.__name__.startswith("test_"):
            if inspect.signature(func).parameters:
                print(f"Skipping {func.__name__} (needs pytest fixtures)")
                continue
            print(f"Running {func.__name__} ...")
            func()
    print("Done")


def write_files(dirname, files):
    """ Write a dict of filename -> bytes/str into the given directory.
    """
    for fname, data in files.items():
        if isinstance(data, str):
            data = data.encode()
        with open(os.path.join(dirname, fname), "wb") as f:
            f.write(data)


def make_table(files, url_prefix="/", **kwargs):
    """ Compile a dict of filename -> bytes/str into an AssetTable, the way
    the compiler does, but without touching the file system.
    """
    assets = []
    for fname in sorted(files):
        data = files[fname]
        if isinstance(data, str):
            data = data.encode()
        mime = content_type_for_filename(fname)
        assets.append(compile_asset(url_prefix + fname, data, mime, **kwargs))
    return AssetTable(assets)


def make_registry(files, **kwargs):
    return AssetRegistry(make_table(files, **kwargs))


def make_server(registry, ws_handler=None, **kwargs):
    servername = get_backend()
    if servername == "mock":
        return MockTestServer(registry, ws_handler, **kwargs)
    else:
        return ThreadTestServer(registry, ws_handler, **kwargs)
