import argparse
import asyncio

from page_agent.config.config import Settings
from page_agent.core.audit import AuditLog
from page_agent.core.llm import OpenAIModel
from page_agent.core.plan_runner import plan_and_run
from page_agent.core.planner import Planner
from page_agent.core.security import PermissionGate, PermissionPolicy
from page_agent.core.timeline import AgentRun, AgentSession
from page_agent.infra.page_backend import PlaywrightPageBackend
from page_agent.infra.runtime import BrowserRuntime
from page_agent.infra.tracing import TextLogger, TraceLogger
from page_agent.langgraph_loop import build_agent_loop


def print_timeline(run: AgentRun) -> None:
    print(f"[agent] Run {run.id[:8]} '{run.title}' ({len(run.steps)} steps)")
    for idx, step in enumerate(run.steps):
        detail = step.action.url or step.action.text or (step.action.locator.to_dict() if step.action.locator else "")
        message = f" - {step.message}" if step.message else ""
        print(f"[agent]  {idx:>2}. [{step.state.value:<7}] {step.action.type.value} {detail}{message}")


async def amain() -> None:
    parser = argparse.ArgumentParser(description="Browser agent: plan or iterate page actions for one instruction.")
    parser.add_argument("--goal", help="Instruction for the agent (prompted when omitted).")
    parser.add_argument("--mode", choices=["loop", "plan"], default="loop", help="Iterative tool loop or one-shot plan.")
    parser.add_argument("--max-steps", type=int, help="Step budget for the loop.")
    parser.add_argument("--auto-consent", action="store_true", help="Answer consent prompts with 'Allow once'.")
    parser.add_argument("--start-url", help="Page to open before running.")
    parser.add_argument("--headless", action="store_true", help="Run Chromium headless.")
    args = parser.parse_args()

    settings = Settings.load()
    if args.max_steps:
        settings.max_steps = max(1, args.max_steps)
    if args.auto_consent:
        settings.auto_consent = True
    if args.start_url:
        settings.start_url = args.start_url
    if args.headless:
        settings.headless = True

    goal = args.goal or input("Enter instruction for the agent (leave blank to stop): ").strip()
    if not goal:
        print("[agent] No instruction provided.")
        return
    if not settings.openai_api_key:
        print("[agent] OPENAI_API_KEY not set; cannot run the agent.")
        return

    paths = settings.paths
    if paths is None:
        print("[agent] Settings.paths missing; cannot start.")
        return
    text_log = TextLogger(paths.agent_log)
    trace = TraceLogger(paths.trace_log)
    audit = AuditLog(TraceLogger(paths.audit_log))
    gate = PermissionGate(PermissionPolicy.from_settings(settings))
    llm = OpenAIModel(
        settings.openai_api_key,
        settings.openai_model,
        base_url=settings.openai_base_url,
        max_retries=settings.planner_max_retries,
    )
    session = AgentSession()

    runtime = BrowserRuntime(settings)
    page = await runtime.launch()
    print(f"[agent] Browser started with persistent profile at: {paths.profile_dir}")
    print(f"[agent] Initial URL: {page.url}")
    print(f"[agent] Trace/logs: {paths.logs_dir}")
    backend = PlaywrightPageBackend(runtime, auto_consent=settings.auto_consent)

    try:
        if args.mode == "plan":
            result = await plan_and_run(
                goal,
                settings=settings,
                session=session,
                planner=Planner(llm, text_log=text_log),
                backend=backend,
                context_provider=backend,
                gate=gate,
                audit=audit,
                llm=llm,
                text_log=text_log,
                trace=trace,
            )
        else:
            run_loop = build_agent_loop(
                settings=settings,
                llm=llm,
                backend=backend,
                context_provider=backend,
                session=session,
                gate=gate,
                audit=audit,
                text_log=text_log,
                trace=trace,
            )
            result = await run_loop(goal)
        if result.get("run"):
            print_timeline(result["run"])
        print(f"[agent] Stop reason: {result.get('stop_reason')} ({result.get('stop_details')})")
    except KeyboardInterrupt:
        print("\n[agent] Interrupt received, shutting down...")
    finally:
        await runtime.close()
        print("[agent] Browser closed. Bye.")


def run() -> None:
    asyncio.run(amain())


if __name__ == "__main__":
    run()
