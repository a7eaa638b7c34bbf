"""Stateful counter: tools appear and disappear as state changes.

    restep run examples/counter.py -m openai/gpt-4o-mini
"""

from pydantic import BaseModel

OPTIONS = {"temperature": 0}


class Empty(BaseModel):
    pass


def build(ctx):
    count, set_count = ctx.state("count", 0)

    ctx.system("role", "You are a careful counter. Increment until the limit, then report.")
    ctx.define("count", count)
    ctx.define("limit", 3)
    ctx.user("Count up to the limit, then tell me the final value.")

    if count < 3:
        ctx.tool(
            "increment",
            "Add one to the counter",
            Empty,
            lambda params: set_count(lambda n: n + 1) or "incremented",
        )
    else:
        ctx.system("done", "The limit is reached. Answer with the final count.").remind()
