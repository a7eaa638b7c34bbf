"""A task list driving a research agent that returns structured findings.

    restep run examples/research.py -m anthropic/claude-sonnet-4-5-20250929
"""

from pydantic import BaseModel

from restep.plugins import define_compaction, define_task_list


class Topic(BaseModel):
    topic: str


class Findings(BaseModel):
    summary: str
    sources: list[str]


def research(args: Topic, ctx):
    ctx.user("Research {topic} and list the sources you would cite.", topic=args.topic)


def build(ctx):
    ctx.user("Write a short briefing on retrieval-augmented generation.")
    ctx.agent(
        "researcher",
        "Research a topic and return a summary with sources",
        Topic,
        research,
        system="You are a meticulous research assistant.",
        response_model=Findings,
    )
    define_task_list(
        ctx,
        [
            {"id": "1", "name": "Gather findings", "system": "Call researcher once per subtopic."},
            {"id": "2", "name": "Write the briefing", "tool_mode": "exclusive"},
        ],
    )
    define_compaction(ctx, max_messages=40, preserve_recent=8)
