import pytest

from agentflow.domain.context_tracker import (
    BRACKET_CONFIGS,
    enforce_token_budget,
    estimate_context_percent,
    estimate_tokens,
    get_bracket,
    get_max_context_for_runner,
    normalize_runner,
    word_estimate,
)
from agentflow.domain.models.prompt_sections import PromptSection
from agentflow.domain.models.session import ContextBracket


def _section(name: str, priority: int, tokens: int) -> PromptSection:
    return PromptSection(name=name, content=name, priority=priority, tokens=tokens)


class TestEstimateTokens:
    def test_empty_text_is_zero(self):
        assert estimate_tokens("") == 0

    def test_words_and_whitespace(self):
        assert estimate_tokens("Hello world") == 3

    def test_code_line_counts_symbols_and_digits(self):
        # const, x, =, 42, ;  plus four single spaces
        assert estimate_tokens("const x = 42;") == 8

    def test_newlines_cost_one_each(self):
        assert estimate_tokens("line1\nline2\nline3") == 5

    def test_carriage_return_is_whitespace(self):
        assert estimate_tokens("a\r\nb") == 4

    def test_long_whitespace_run(self):
        assert estimate_tokens(" " * 8) == 2

    def test_non_breaking_space_is_whitespace(self):
        assert estimate_tokens("\u00a0") == 1

    def test_digit_runs_cost_one_per_three(self):
        assert estimate_tokens("1234567") == 3

    def test_astral_symbol_costs_two(self):
        assert estimate_tokens("😀") == 2

    def test_bmp_symbol_costs_one(self):
        assert estimate_tokens("é") == 1

    def test_is_deterministic(self):
        text = "def handle(request):\n    return {'status': 200}\n"
        assert estimate_tokens(text) == estimate_tokens(text)


class TestWordEstimate:
    def test_short_word(self):
        assert word_estimate("Hello") == 1

    def test_camel_case_is_split(self):
        # generate(2) + Session(2) + Title(1)
        assert word_estimate("generateSessionTitle") == 5

    def test_snake_case_is_split(self):
        # session(2) + state(1) + manager(2)
        assert word_estimate("session_state_manager") == 5

    def test_medium_word(self):
        assert word_estimate("abcdefghij") == 2

    def test_long_word(self):
        assert word_estimate("abcdefghijk") == 3


class TestRunners:
    def test_normalize(self):
        assert normalize_runner("Claude Code") == "claude-code"
        assert normalize_runner("GitHub_Copilot") == "github-copilot"

    @pytest.mark.parametrize(
        "runner,expected",
        [
            ("Claude Code", 200_000),
            ("Gemini CLI", 1_000_000),
            ("gemini-2.5-pro", 1_000_000),
            ("GitHub_Copilot", 128_000),
            ("some-unknown-runner", 200_000),
        ],
    )
    def test_context_window(self, runner, expected):
        assert get_max_context_for_runner(runner) == expected


class TestBrackets:
    def test_fresh_at_start(self):
        config = get_bracket(1, 200_000)
        assert config.bracket == ContextBracket.FRESH
        assert config.token_budget == 4000
        assert config.handoff_warning is False

    def test_critical_after_many_rounds(self):
        config = get_bracket(50, 200_000)
        assert config.bracket == ContextBracket.CRITICAL
        assert config.handoff_warning is True
        assert config.token_budget == 10000

    def test_moderate_and_depleted(self):
        assert get_bracket(30, 200_000).bracket == ContextBracket.MODERATE
        assert get_bracket(40, 200_000).bracket == ContextBracket.DEPLETED

    def test_shared_boundary_resolves_to_tighter_bracket(self):
        # 3 rounds of 3500 in a 14000 window leaves exactly 25%
        assert estimate_context_percent(3, 14_000) == 25.0
        assert get_bracket(3, 14_000).bracket == ContextBracket.CRITICAL

    def test_percent_is_clamped(self):
        assert estimate_context_percent(0, 200_000) == 100.0
        assert estimate_context_percent(1000, 200_000) == 0.0

    def test_zero_window_is_rejected(self):
        with pytest.raises(ValueError):
            estimate_context_percent(1, 0)

    def test_selected_bracket_always_contains_percent(self):
        for prompt_count in range(0, 80):
            percent = estimate_context_percent(prompt_count, 200_000)
            config = get_bracket(prompt_count, 200_000)
            assert config.min_percent <= percent <= config.max_percent

    def test_budgets_grow_as_context_shrinks(self):
        budgets = [c.token_budget for c in BRACKET_CONFIGS]
        assert budgets == sorted(budgets)


class TestEnforceTokenBudget:
    def test_under_budget_keeps_everything(self):
        sections = [_section("agent", 0, 10), _section("rules", 1, 10)]
        assert enforce_token_budget(sections, 100) == sections

    def test_drops_highest_priority_value_first(self):
        agent = _section("agent", 0, 100)
        history = _section("session_history", 6, 200)
        index = _section("artifact_index", 5, 150)

        result = enforce_token_budget([agent, history, index], 200)

        assert result == [agent]

    def test_stops_once_within_budget(self):
        agent = _section("agent", 0, 100)
        history = _section("session_history", 6, 200)
        rules = _section("rules", 1, 50)

        result = enforce_token_budget([agent, rules, history], 200)

        assert [s.name for s in result] == ["agent", "rules"]

    def test_protected_sections_survive_any_budget(self):
        sections = [_section("agent", 0, 5000), _section("task", 0, 5000)]
        result = enforce_token_budget(sections, 100)
        assert result == sections

    def test_ties_are_dropped_in_input_order(self):
        agent = _section("agent", 0, 10)
        first = _section("first", 3, 50)
        second = _section("second", 3, 50)

        result = enforce_token_budget([agent, first, second], 70)

        assert [s.name for s in result] == ["agent", "second"]

    def test_survivor_order_is_preserved(self):
        sections = [
            _section("rules", 1, 10),
            _section("agent", 0, 10),
            _section("session_history", 6, 1000),
            _section("task", 0, 10),
        ]
        result = enforce_token_budget(sections, 50)
        assert [s.name for s in result] == ["rules", "agent", "task"]
