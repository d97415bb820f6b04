"""Unit tests for the RunRenderer: Rich panel output for pipeline runs."""

from __future__ import annotations

import io

import pytest
from rich.console import Console
from rich.panel import Panel

from buildrelay.models.artifacts import ArtifactKind, ArtifactRef
from buildrelay.models.runs import PipelineRun
from buildrelay.models.stages import PROMOTION_ORDER, PromotionState
from buildrelay.monitor.renderer import RunRenderer


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def renderer(output: io.StringIO) -> RunRenderer:
    return RunRenderer(console=Console(file=output, width=140, color_system=None))


def _advance(state_machine, run: PipelineRun, target: PromotionState) -> PipelineRun:
    for state in PROMOTION_ORDER[PROMOTION_ORDER.index(run.state) + 1 :]:
        run = state_machine.transition(run, state, detail=f"entered {state.value}")
        if state is target:
            break
    return run


@pytest.fixture
def fresh_run(state_machine, version, coordinates, clock) -> PipelineRun:
    return state_machine.register(
        PipelineRun(
            run_id="br-render-1", version=version, coordinates=coordinates, created_at=clock.now()
        )
    )


class TestRunRenderer:
    def test_render_returns_panel(self, renderer, fresh_run):
        assert isinstance(renderer.render_run(fresh_run), Panel)

    def test_shows_identity(self, renderer, output, fresh_run):
        renderer.print_run(fresh_run)
        text = output.getvalue()
        assert "br-render-1" in text
        assert "1.0.0-20260129" in text
        assert "com.chat:app" in text

    def test_lists_every_state(self, renderer, output, fresh_run):
        renderer.print_run(fresh_run)
        text = output.getvalue()
        for state in PROMOTION_ORDER:
            assert state.value in text

    def test_failed_run_shows_detail(self, renderer, output, state_machine, fresh_run):
        run = _advance(state_machine, fresh_run, PromotionState.COMPILED)
        run = state_machine.fail(run, "BuildError: tests failed [tests=3 failures=1]")
        renderer.print_run(run)
        text = output.getvalue()
        assert "FAILED" in text
        assert "from compiled" in text
        # Brackets in the detail must survive markup rendering.
        assert "[tests=3 failures=1]" in text

    def test_pushed_run(self, renderer, output, state_machine, fresh_run, version):
        run = _advance(state_machine, fresh_run, PromotionState.TAGGED)
        run = state_machine.transition(
            run,
            PromotionState.PUSHED,
            artifacts=[
                ArtifactRef(
                    kind=ArtifactKind.IMAGE,
                    name="chat-app",
                    version=version,
                    location="chat-app:latest",
                )
            ],
        )
        renderer.print_run(run)
        text = output.getvalue()
        assert "PUSHED" in text
        assert "chat-app:latest" in text

    def test_chain_verification_messages(self, renderer, output):
        renderer.print_chain_verification("br-render-1", True)
        renderer.print_chain_verification("br-render-1", False)
        text = output.getvalue()
        assert "is valid" in text
        assert "BROKEN" in text
