import pytest

from agentflow.domain.models.session import SessionEventType


class TestAppendEvent:
    def test_append_bumps_last_activity(self, make_session, fixed_now):
        session = make_session(last_activity=fixed_now)

        event = session.append_event(SessionEventType.PHASE_START, "dev", "build")

        assert session.events == [event]
        assert session.last_activity == event.timestamp

    def test_data_is_copied(self, make_session):
        session = make_session()
        data = {"tokens": 1}
        session.append_event(SessionEventType.PHASE_COMPLETE, "dev", "build", data)
        data["tokens"] = 99
        assert session.events[0].data == {"tokens": 1}


class TestCompletedPhases:
    def test_only_phase_complete_events_count(self, make_session):
        session = make_session()
        session.append_event(SessionEventType.SESSION_START, "master")
        session.append_event(SessionEventType.PHASE_START, "dev", "build")
        session.append_event(SessionEventType.PHASE_COMPLETE, "dev", "build")
        session.append_event(SessionEventType.PHASE_START, "qa", "review")
        session.append_event(SessionEventType.PHASE_FAILED, "qa", "review")

        assert session.completed_phase_ids() == {"build"}
        assert len(session.events_of(SessionEventType.PHASE_START)) == 2


class TestTrimEvents:
    def test_keeps_first_and_newest(self, make_session):
        session = make_session()
        session.append_event(SessionEventType.SESSION_START, "master")
        for i in range(10):
            session.append_event(SessionEventType.METRICS_UPDATE, "dev", data={"i": i})

        session.trim_events(5)

        assert len(session.events) == 5
        assert session.events[0].type == SessionEventType.SESSION_START
        assert [e.data["i"] for e in session.events[1:]] == [6, 7, 8, 9]

    def test_short_log_is_untouched(self, make_session):
        session = make_session()
        session.append_event(SessionEventType.SESSION_START, "master")
        session.trim_events(5)
        assert len(session.events) == 1

    def test_max_below_two_is_rejected(self, make_session):
        with pytest.raises(ValueError):
            make_session().trim_events(1)
