import pytest

from agentflow.domain.persistence.gotchas_memory import GotchasMemory, normalize_error


@pytest.fixture
def memory(tmp_path):
    return GotchasMemory(tmp_path)


def test_normalize_error_strips_volatile_parts():
    error = "Error at /home/u/project/src/app.py line 3: 0xDEADBEEF id 1234567"
    assert normalize_error(error) == "Error at app.py line 3: <hex> id <num>"


def test_normalized_patterns_are_capped():
    assert len(normalize_error("x" * 500)) == 200


def test_pattern_is_promoted_on_third_occurrence(memory):
    assert memory.record_error("ENOENT: missing config", "dev") is None
    assert memory.record_error("ENOENT: missing config", "dev") is None

    gotcha = memory.record_error("ENOENT: missing config", "dev")

    assert gotcha is not None
    assert gotcha.occurrences == 3
    assert gotcha.agent == "dev"


def test_variants_with_different_paths_share_a_pattern(memory):
    memory.record_error("cannot open /tmp/run-1/out.log", "dev")
    memory.record_error("cannot open /var/tmp/run-2/out.log", "dev")
    gotcha = memory.record_error("cannot open /srv/x/out.log", "dev")
    assert gotcha is not None


def test_promoted_gotcha_keeps_counting(memory):
    for _ in range(4):
        memory.record_error("boom", "dev")

    assert memory.get_relevant_gotchas("dev") == "- boom (seen 4x)"


def test_relevance_by_agent_domain_or_general(memory):
    for _ in range(3):
        memory.record_error("dev only", "dev", "execution")
        memory.record_error("everyone", "qa", "general")

    assert "dev only" in memory.get_relevant_gotchas("dev")
    assert "everyone" in memory.get_relevant_gotchas("dev")
    qa = memory.get_relevant_gotchas("qa")
    assert "dev only" not in qa
    assert "dev only" in memory.get_relevant_gotchas("qa", domain="execution")


def test_at_most_five_gotchas_most_frequent_first(memory):
    for n in range(6):
        for _ in range(3 + n):
            memory.record_error(f"error {n}", "dev")

    lines = memory.get_relevant_gotchas("dev").splitlines()

    assert len(lines) == 5
    assert lines[0] == "- error 5 (seen 8x)"
    assert not any("error 0" in line for line in lines)


def test_store_persists_across_instances(tmp_path):
    for _ in range(3):
        GotchasMemory(tmp_path).record_error("flaky", "dev")
    assert GotchasMemory(tmp_path).get_relevant_gotchas("dev") == "- flaky (seen 3x)"


def test_no_gotchas_is_empty(memory):
    assert memory.get_relevant_gotchas("dev") == ""
