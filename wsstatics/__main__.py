"""
The wsstatics command line interface. Usage:

    wsstatics compile <input_dir> <output_file> [url_prefix] [--raw] [--max-age=N]
    wsstatics serve <compiled_file | directory> [--bind=host:port] [--log-level=info] [--echo]

The compile command writes a Python module that embeds the (gzipped) files
in ``input_dir``. The serve command serves such a module, or a directory
(compiled in memory).
"""

import os
import sys

from ._assets import CompileError
from ._compiler import compile_directory, compile_to_file, load_compiled
from ._logging import set_log_level
from ._registry import AssetRegistry
from ._run import run, parse_bind


USAGE = """Usage:
    wsstatics compile <input_dir> <output_file> [url_prefix] [--raw] [--max-age=N]
    wsstatics serve <compiled_file | directory> [--bind=host:port] [--log-level=info] [--echo]"""


def parse_args(argv):
    """ Split the given command line arguments into a list of positional
    args and a dict of options. Options have the form ``--key=value``, or
    ``--key`` (which gives True). Dashes in keys become underscores.
    """
    args = []
    options = {}
    for arg in argv:
        if arg.startswith("--"):
            key, eq, val = arg[2:].partition("=")
            options[key.replace("-", "_")] = val if eq else True
        else:
            args.append(arg)
    return args, options


def _fail(message, code=2):
    print(message, file=sys.stderr)
    return code


async def echo_handler(connection):
    """ A websocket handler that sends every message back.
    """
    async for message in connection.receive_iter():
        await connection.send(message)


def compile_command(args, options):
    """ Compile a directory into an asset module.
    """
    if len(args) not in (2, 3):
        return _fail(USAGE)
    input_dir, output = args[:2]
    url_prefix = args[2] if len(args) == 3 else "/"

    compress = not options.pop("raw", False)
    max_age = options.pop("max_age", None)
    if max_age is not None:
        if not (isinstance(max_age, str) and max_age.isdigit()):
            return _fail("wsstatics compile: --max-age must be a positive int")
        max_age = int(max_age)
    if options:
        return _fail(f"wsstatics compile: unknown options {sorted(options)}")

    try:
        table = compile_to_file(
            input_dir, output, url_prefix, compress=compress, max_age=max_age
        )
    except CompileError as err:
        return _fail(f"wsstatics compile: {err}", 1)

    for asset in table:
        print(f"  {asset.url} ({asset.size} bytes)")
    print(f"Wrote {table.count} assets to {output}")
    return 0


def serve_command(args, options):
    """ Serve a compiled asset module or a directory.
    """
    if len(args) != 1:
        return _fail(USAGE)
    source = args[0]
    bind = options.pop("bind", "localhost:8080")
    log_level = options.pop("log_level", "info")
    ws_handler = echo_handler if options.pop("echo", False) else None
    if options:
        return _fail(f"wsstatics serve: unknown options {sorted(options)}")
    try:
        host, port = parse_bind(bind)
        set_log_level(str(log_level))
    except (TypeError, ValueError) as err:
        return _fail(f"wsstatics serve: {err}")

    registry = AssetRegistry()
    try:
        if os.path.isdir(source):
            registry.set_active_table(compile_directory(source))
        else:
            load_compiled(source).init_embedded_assets(registry)
    except (CompileError, ImportError, AttributeError, SyntaxError, OSError) as err:
        return _fail(f"wsstatics serve: cannot load assets: {err}", 1)

    run(registry, ws_handler, f"{host}:{port}")
    return 0


COMMANDS = {"compile": compile_command, "serve": serve_command}


def main(argv):
    """ CLI entry point. Returns the exit code.
    """
    args, options = parse_args(argv)
    if not args or args[0] not in COMMANDS:
        return _fail(USAGE)
    return COMMANDS[args[0]](args[1:], options)


def cli():
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    cli()
