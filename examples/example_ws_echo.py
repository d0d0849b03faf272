"""
Example that serves a page and echos websocket messages on the same port.

The assets are defined in this file and turned into a table in memory. For
a real deployment you'd use ``wsstatics compile`` and import the result.
"""

import wsstatics
from wsstatics._assets import content_type_for_filename
from wsstatics._compiler import compile_asset


index = """
<!DOCTYPE html>
<html>
<meta><meta charset='UTF-8'></meta>
<body>
Open console, and use "ws.send('x')" to send a message to the server.

<script>

window.onload = function() {
    window.ws = new WebSocket('ws://' + window.location.host + '/ws');
    window.ws.onmessage = function(m) {
        console.log(m.data);
    }
    window.ws.onerror = function (e) {
        console.log(e);
    }
    window.ws.onclose = function () {
        console.log('ws closed');
    }
}

</script>
</body>
</html>
""".lstrip()


assets = {"index.html": index, "foo.txt": "This is foo"}

table = wsstatics.AssetTable(
    compile_asset("/" + fname, text.encode(), content_type_for_filename(fname))
    for fname, text in assets.items()
)


async def websocket_handler(connection):
    print("connection", connection)
    await connection.send("hello!")
    async for m in connection.receive_iter():
        await connection.send("echo: " + str(m))
        print(m)
    print("done")


if __name__ == "__main__":
    registry = wsstatics.AssetRegistry(table)
    wsstatics.run(registry, websocket_handler, "localhost:8080")
