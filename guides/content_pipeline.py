"""Example content pipeline: define, run and resume a workflow.

Run it directly to execute the pipeline against the configured store::

    python guides/content_pipeline.py

or list it through the CLI::

    stepwise workflow list --path guides
"""

import asyncio
import random

from stepwise import StepContext, WorkflowEngine, define_workflow
from stepwise.errors import StepFailure

LESSONS = ["variables", "loops", "functions", "classes"]


async def init_db(ctx: StepContext) -> None:
    ctx.logger.info("Preparing content tables")
    await ctx.update_progress(100, "tables ready")


async def load_topics(ctx: StepContext) -> None:
    for index, lesson in enumerate(LESSONS, start=1):
        await asyncio.sleep(0.05)
        await ctx.update_progress(index / len(LESSONS) * 100, f"loaded {lesson}")


async def generate_lessons(ctx: StepContext) -> None:
    checkpoint = await ctx.load_checkpoint()
    done = list(checkpoint.get("generated", []))
    for lesson in LESSONS:
        if lesson in done:
            continue
        await asyncio.sleep(0.1)
        if random.random() < 0.2:
            raise RuntimeError(f"generator unavailable while writing '{lesson}'")
        done.append(lesson)
        await ctx.save_checkpoint({"generated": done})
        await ctx.update_progress(len(done) / len(LESSONS) * 100, f"generated {lesson}")


async def publish(ctx: StepContext) -> None:
    ctx.logger.info(f"Publishing {len(LESSONS)} lessons")


def _steps(wf):
    wf.define_step("init", init_db, description="Initialize database")
    wf.define_step("load", load_topics, description="Load topics", dependencies=["init"])
    wf.define_step(
        "process",
        generate_lessons,
        description="Generate lesson content",
        dependencies=["load"],
        timeout=30,
    )
    wf.define_step("publish", publish, description="Publish lessons", dependencies=["process"])


content_pipeline = define_workflow(
    "content-pipeline",
    _steps,
    {"description": "Generate and publish lesson content", "version": "1.0.0"},
)


async def main():
    engine = WorkflowEngine()
    run_id = None
    for attempt in range(1, 4):
        try:
            run_id = await engine.run_workflow(content_pipeline, resume_run_id=run_id)
            print(f"Run {run_id} completed on attempt {attempt}")
            return
        except StepFailure as exc:
            run_id = exc.run_id
            print(f"Attempt {attempt} failed at {exc.step_name}: {exc.error_message}")


if __name__ == "__main__":
    asyncio.run(main())
