"""A composite tool with per-member error handling.

    restep run examples/composite.py
"""

from pydantic import BaseModel

from restep import tool


class Path(BaseModel):
    path: str


class Write(BaseModel):
    path: str
    text: str


FILES = {"notes.txt": "buy milk"}


def read_file(params: Path) -> str:
    if params.path not in FILES:
        raise FileNotFoundError(params.path)
    return FILES[params.path]


def write_file(params: Write) -> str:
    FILES[params.path] = params.text
    return f"wrote {len(params.text)} characters"


def missing_file(params: Path, error: Exception) -> dict:
    return {"error": f"{params.path} does not exist", "known": sorted(FILES)}


def build(ctx):
    ctx.user("Read notes.txt and todo.txt, then append 'call mom' to notes.txt.")
    ctx.tool(
        "files",
        "Read and write small text files",
        [
            tool("read", "Read a file", Path, read_file, on_error=missing_file),
            tool("write", "Overwrite a file", Write, write_file),
        ],
    )
