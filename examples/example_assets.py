"""
Example that compiles a directory of static files into a module, and then
serves it. Equivalent to::

    wsstatics compile ./site site_assets.py
    wsstatics serve site_assets.py

"""

import os
import tempfile

import wsstatics


# Create a small site. Change this to point to your own directory.
site_dir = tempfile.mkdtemp()
pages = {
    "index.html": "<html><a href='foo.html'>foo</a> or <a href='bar.html'>bar</a></html>",
    "foo.html": "<html>This is foo, there is also <a href='bar.html'>bar</a></html>",
    "bar.html": "<html>This is bar, there is also <a href='foo.html'>foo</a></html>",
}
for fname, text in pages.items():
    with open(os.path.join(site_dir, fname), "wb") as f:
        f.write(text.encode())


if __name__ == "__main__":
    output = os.path.join(site_dir, "site_assets.py")
    table = wsstatics.compile_to_file(site_dir, output, max_age=100)
    print(f"Compiled {table.count} assets into {output}")

    site_assets = wsstatics.load_compiled(output)
    registry = wsstatics.AssetRegistry()
    site_assets.init_embedded_assets(registry)
    wsstatics.run(registry, None, "localhost:8080")
