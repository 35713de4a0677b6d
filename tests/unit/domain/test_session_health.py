from datetime import timedelta

from agentflow.domain.models.session import SessionStatus
from agentflow.domain.session_health import detect_crashed_session, generate_session_title


class TestDetectCrashedSession:
    def test_running_session_past_threshold_is_crashed(self, make_session, fixed_now):
        session = make_session(
            current_phase="build",
            current_agent="dev",
            last_activity=fixed_now - timedelta(minutes=60),
        )

        crash = detect_crashed_session(session, 30, now=fixed_now)

        assert crash is not None
        assert crash.minutes_since_activity == 60
        assert crash.last_phase == "build"
        assert crash.last_agent == "dev"

    def test_recent_activity_is_not_crashed(self, make_session, fixed_now):
        session = make_session(last_activity=fixed_now - timedelta(minutes=10))
        assert detect_crashed_session(session, 30, now=fixed_now) is None

    def test_threshold_is_inclusive(self, make_session, fixed_now):
        session = make_session(last_activity=fixed_now - timedelta(minutes=30))
        assert detect_crashed_session(session, 30, now=fixed_now) is not None

    def test_non_running_sessions_never_crash(self, make_session, fixed_now):
        for status in (SessionStatus.PAUSED, SessionStatus.COMPLETED, SessionStatus.FAILED):
            session = make_session(
                status=status, last_activity=fixed_now - timedelta(days=3)
            )
            assert detect_crashed_session(session, 30, now=fixed_now) is None


class TestGenerateSessionTitle:
    def test_mission_is_used_as_is(self):
        assert generate_session_title("Add OAuth login", "Plan") == "Add OAuth login"

    def test_short_mission_gets_first_phase(self):
        assert generate_session_title("Fix", "Plan") == "Fix: Plan"

    def test_long_title_is_truncated(self):
        title = generate_session_title("x" * 80)
        assert len(title) == 50
        assert title.endswith("...")
