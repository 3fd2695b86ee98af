"""Tests for selector validation, confidence scoring and action fitness."""

import pytest
from selenium.common.exceptions import InvalidSelectorException, StaleElementReferenceException

from healing_engine.core.models import ElementAction, ValidatedSelector
from healing_engine.services.selector_validator import SelectorValidator, score_selector
from tests.utils.fake_webdriver import FakeDriver, FakeElement, button


@pytest.fixture
def validator():
    return SelectorValidator(action_check_timeout=0)


class TestScoring:

    def test_unique_visible_enabled_semantic_element_scores_full(self):
        assert score_selector(1, True, True, "button") == 1.0

    def test_unique_visible_enabled_non_semantic(self):
        assert score_selector(1, True, True, "div") == 0.9

    def test_few_matches(self):
        assert score_selector(3, True, True, "button") == 0.8

    def test_many_invisible_matches_stay_below_threshold(self):
        assert score_selector(5, False, True, "button") == 0.5
        assert score_selector(5, False, False, "div") == 0.3

    def test_no_match_is_zero(self):
        assert score_selector(0, True, True, "button") == 0.0


class TestValidate:

    def test_unique_button(self, validator):
        driver = FakeDriver().register("#submit", button())
        result = validator.validate_sync(driver, "#submit")
        assert result.is_valid
        assert result.match_count == 1
        assert result.confidence == 1.0
        assert result.tag_name == "button"
        assert result.has_text

    def test_no_match(self, validator):
        result = validator.validate_sync(FakeDriver(), "#missing")
        assert result == ValidatedSelector.no_match("#missing")

    def test_driver_rejects_selector(self, validator):
        driver = FakeDriver().fail("//[", InvalidSelectorException("invalid selector: //["))
        result = validator.validate_sync(driver, "//[")
        assert not result.is_valid
        assert result.confidence == 0.0
        assert "invalid selector" in result.error

    def test_malformed_shorthand_does_not_raise(self, validator):
        result = validator.validate_sync(FakeDriver(), "role=button[name=")
        assert not result.is_valid
        assert result.error.startswith("Malformed role selector")

    def test_state_lookup_errors_use_defaults(self, validator):
        stale = StaleElementReferenceException("gone")
        driver = FakeDriver().register(".item", FakeElement("div", displayed=stale, enabled=stale))
        result = validator.validate_sync(driver, ".item")
        assert result.is_valid
        assert not result.is_visible
        assert result.is_enabled
        assert result.confidence == 0.7

    @pytest.mark.asyncio
    async def test_validate_all_ranks_stably(self, validator):
        driver = (FakeDriver()
                  .register(".a", FakeElement("div"), FakeElement("div"))
                  .register(".b", button())
                  .register(".c", FakeElement("div"), FakeElement("div")))
        results = await validator.validate_all(driver, [".a", ".b", ".c", ".d"])
        assert [r.selector for r in results] == [".b", ".a", ".c", ".d"]

    def test_select_best_respects_order_and_threshold(self):
        results = [
            ValidatedSelector(".x", True, 2, 0.6),
            ValidatedSelector(".y", True, 1, 0.9),
            ValidatedSelector(".z", True, 1, 0.9),
        ]
        assert SelectorValidator.select_best(results, 0.7).selector == ".y"
        assert SelectorValidator.select_best(results, 0.95) is None


class TestActionFitness:

    def test_click_requires_visible_and_enabled(self, validator):
        driver = (FakeDriver()
                  .register("#ok", button())
                  .register("#disabled", button(enabled=False))
                  .register("#hidden", button(displayed=False)))
        assert validator.check_action_fitness_sync(driver, "#ok", ElementAction.CLICK)
        assert not validator.check_action_fitness_sync(driver, "#disabled", ElementAction.CLICK)
        assert not validator.check_action_fitness_sync(driver, "#hidden", ElementAction.CLICK)

    def test_fill_requires_input_or_textarea(self, validator):
        driver = (FakeDriver()
                  .register("#name", FakeElement("input"))
                  .register("#notes", FakeElement("textarea"))
                  .register("#label", FakeElement("span", text="Name")))
        assert validator.check_action_fitness_sync(driver, "#name", ElementAction.FILL)
        assert validator.check_action_fitness_sync(driver, "#notes", ElementAction.FILL)
        assert not validator.check_action_fitness_sync(driver, "#label", ElementAction.FILL)

    def test_visible(self, validator):
        driver = FakeDriver().register("#hidden", FakeElement("div", displayed=False))
        assert not validator.check_action_fitness_sync(driver, "#hidden", ElementAction.VISIBLE)
        assert validator.check_action_fitness_sync(driver, "#hidden", ElementAction.TEXT)

    def test_no_match_is_unfit(self, validator):
        assert not validator.check_action_fitness_sync(FakeDriver(), "#gone", ElementAction.ANY)

    @pytest.mark.asyncio
    async def test_async_wrapper(self, validator):
        driver = FakeDriver().register("#ok", button())
        assert await validator.check_action_fitness(driver, "#ok", ElementAction.CLICK)
