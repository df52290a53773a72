"""Tests for the stub session spawner."""

import asyncio

from flowdeck.runtime.engines import SessionSpawner, SpawnRequest, StubSessionSpawner, default_stub_output


class TestStubSessionSpawner:
    """Tests for StubSessionSpawner."""

    def test_is_a_session_spawner(self):
        spawner = StubSessionSpawner()
        assert isinstance(spawner, SessionSpawner)
        assert spawner.engine_id == "stub"

    def test_default_output_echoes_request(self):
        request = SpawnRequest(
            prompt="do it",
            tool_filter={"allowed": ["Read"], "denied": ["Write"]},
            timeout=30,
            model="sonnet",
            step_id="plan",
            agent_id="planner-agent",
        )

        output = default_stub_output(request)

        assert "Agent planner-agent executed step plan with model sonnet" in output
        assert "- Allowed: Read" in output
        assert "- Denied: Write" in output
        assert "Timeout: 30s" in output
        assert "do it" in output
        assert output.endswith("STATUS: done\n")

    def test_unrestricted_filter_described(self):
        output = default_stub_output(SpawnRequest(prompt="p"))
        assert "- Allowed: all" in output
        assert "- Denied: none" in output

    def test_scripted_outputs_per_step(self):
        spawner = StubSessionSpawner(outputs={"plan": "scripted"}, output_fn=lambda r: "computed")

        first = asyncio.run(spawner.spawn(SpawnRequest(prompt="p", step_id="plan")))
        second = asyncio.run(spawner.spawn(SpawnRequest(prompt="p", step_id="build")))

        assert first.output == "scripted"
        assert second.output == "computed"
        assert [r.step_id for r in spawner.requests] == ["plan", "build"]

    def test_session_keys(self):
        spawner = StubSessionSpawner()

        first = asyncio.run(spawner.spawn(SpawnRequest(prompt="p")))
        second = asyncio.run(spawner.spawn(SpawnRequest(prompt="p")))
        resumed = asyncio.run(spawner.spawn(SpawnRequest(prompt="p", resume_session_key="keep-me")))

        assert first.session_key == "stub-session-1"
        assert second.session_key == "stub-session-2"
        assert resumed.session_key == "keep-me"

    def test_cleanup_recorded(self):
        spawner = StubSessionSpawner()
        asyncio.run(spawner.cleanup("stub-session-1"))
        assert spawner.cleaned_up == ["stub-session-1"]
