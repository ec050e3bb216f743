"""
Built-in browser step table.

The table order is the registry order, and matching is first-match-wins,
so a specific pattern must appear before any general pattern that would
also find it (e.g. the "key" form of "I press" before the click alias).
"""
import logging
from typing import Sequence

from .catalog import ParameterInfo, StepCatalog, StepInfo
from .step_definitions import StepPatternRegistry

logger = logging.getLogger(__name__)

QUOTED = r'"([^"]+)"'


def _step(id: str, category: str, description: str, pattern: str,
          aliases: Sequence[str] = (), params: Sequence[tuple] = (),
          examples: Sequence[str] = ()) -> StepInfo:
    return StepInfo(
        id=id,
        pattern=pattern,
        category=category,
        description=description,
        aliases=list(aliases),
        parameters=[ParameterInfo(name=p[0], type=p[1], description=p[2], required=len(p) < 4 or p[3])
                    for p in params],
        examples=list(examples),
    )


BUILTIN_STEPS = [
    # Navigation
    _step("navigate_to", "Navigation", "Navigate to a URL or path",
          rf'I navigate to {QUOTED}',
          aliases=[rf'I go to {QUOTED}', rf'I open {QUOTED}', rf'I visit {QUOTED}'],
          params=[("url", "string", "Absolute URL or path relative to the base URL")],
          examples=['Given I navigate to "https://example.com"']),
    _step("go_back", "Navigation", "Go back in browser history",
          r'I go back', aliases=[r'I navigate back'],
          examples=['When I go back']),
    _step("go_forward", "Navigation", "Go forward in browser history",
          r'I go forward', aliases=[r'I navigate forward']),
    _step("refresh", "Navigation", "Reload the current page",
          r'I refresh the page', aliases=[r'I reload the page'],
          examples=['When I refresh the page']),

    # Waiting
    _step("wait_load", "Waiting", "Wait for the page to finish loading",
          r'I wait for the page to load', aliases=[r'I wait for page to load', r'the page loads']),
    _step("wait_seconds", "Waiting", "Wait for a number of seconds",
          r'I wait (\d+) seconds?',
          aliases=[r'I wait for (\d+) seconds?', r'I pause for (\d+) seconds?'],
          params=[("seconds", "integer", "Number of seconds")],
          examples=['And I wait 2 seconds']),
    _step("wait_ms", "Waiting", "Wait for a number of milliseconds",
          r'I wait (\d+) milliseconds?', aliases=[r'I wait for (\d+) milliseconds?'],
          params=[("milliseconds", "integer", "Number of milliseconds")]),
    _step("wait_for_text", "Waiting", "Wait until text appears on the page",
          rf'I wait for text {QUOTED} to appear',
          params=[("text", "string", "Text to wait for")]),
    _step("wait_visible", "Waiting", "Wait for an element to become visible",
          rf'I wait for element {QUOTED} to be visible',
          aliases=[rf'I wait for {QUOTED} to be visible', rf'I wait for {QUOTED} to appear',
                   rf'I wait until {QUOTED} is visible'],
          params=[("selector", "string", "Element selector")],
          examples=['And I wait for "#results" to be visible']),
    _step("wait_hidden", "Waiting", "Wait for an element to disappear",
          rf'I wait for element {QUOTED} to be hidden',
          aliases=[rf'I wait for {QUOTED} to disappear'],
          params=[("selector", "string", "Element selector")]),

    # Interaction
    _step("press_key", "Interaction", "Press a keyboard key",
          rf'I press {QUOTED} key', aliases=[rf'I press the {QUOTED} key'],
          params=[("key", "string", "Key name, e.g. Enter or Escape")],
          examples=['When I press "Enter" key']),
    _step("double_click", "Interaction", "Double click an element",
          rf'I double click on {QUOTED}', aliases=[rf'I double-click {QUOTED}'],
          params=[("selector", "string", "Element selector")]),
    _step("click_button_or_link", "Interaction", "Click a button or link by its text",
          rf'I click the {QUOTED} (button|link)',
          params=[("text", "string", "Visible text"), ("kind", "string", "button or link")],
          examples=['When I click the "Sign in" button']),
    _step("click", "Interaction", "Click on an element",
          rf'I click on {QUOTED}',
          aliases=[rf'I click {QUOTED}', rf'I press {QUOTED}', rf'I tap {QUOTED}'],
          params=[("selector", "string", "Element selector")],
          examples=['When I click on "#submit"']),
    _step("hover", "Interaction", "Move the mouse over an element",
          rf'I hover over {QUOTED}', aliases=[rf'I hover {QUOTED}'],
          params=[("selector", "string", "Element selector")]),

    # Input
    _step("type_text", "Input", "Type text into an input field",
          rf'I type {QUOTED} (?:in|into) {QUOTED}',
          aliases=[rf'I enter {QUOTED} (?:in|into) {QUOTED}'],
          params=[("text", "string", "Text to type"), ("selector", "string", "Input selector")],
          examples=['When I type "alice" into "#username"']),
    _step("fill_field", "Input", "Fill an input field with a value",
          rf'I fill in {QUOTED} with {QUOTED}',
          params=[("selector", "string", "Input selector"), ("text", "string", "Value")],
          examples=['When I fill in "#email" with "alice@example.com"']),
    _step("clear_text", "Input", "Clear the contents of an input field",
          rf'I clear the field {QUOTED}', aliases=[rf'I clear {QUOTED}'],
          params=[("selector", "string", "Input selector")]),
    _step("select_option", "Input", "Select an option from a dropdown",
          rf'I select {QUOTED} from {QUOTED}', aliases=[rf'I choose {QUOTED} from {QUOTED}'],
          params=[("option", "string", "Option label"), ("selector", "string", "Select element")],
          examples=['When I select "Blue" from "#colour"']),
    _step("uncheck", "Input", "Uncheck a checkbox",
          rf'I uncheck {QUOTED}', params=[("selector", "string", "Checkbox selector")]),
    _step("check", "Input", "Check a checkbox",
          rf'I check {QUOTED}', params=[("selector", "string", "Checkbox selector")]),
    _step("store_text", "Input", "Store the text of an element under a name",
          rf'I store the text of {QUOTED} as {QUOTED}',
          params=[("selector", "string", "Element selector"), ("name", "string", "Variable name")],
          examples=['And I store the text of "h1" as "title"']),

    # Scrolling
    _step("scroll_bottom", "Scrolling", "Scroll to the bottom of the page",
          r'I scroll to (?:the )?bottom'),
    _step("scroll_top", "Scrolling", "Scroll to the top of the page",
          r'I scroll to (?:the )?top'),
    _step("scroll_to_element", "Scrolling", "Scroll an element into view",
          rf'I scroll to {QUOTED}', params=[("selector", "string", "Element selector")]),
    _step("scroll_by", "Scrolling", "Scroll the page by a number of pixels",
          r'I scroll (\d+) pixels? (down|up)',
          params=[("pixels", "integer", "Distance"), ("direction", "string", "down or up")]),

    # Verification
    _step("should_not_be_visible", "Verification", "Assert that an element is hidden",
          rf'the element {QUOTED} should not be visible',
          aliases=[rf'{QUOTED} should not be visible'],
          params=[("selector", "string", "Element selector")]),
    _step("should_be_visible", "Verification", "Assert that an element is visible",
          rf'the element {QUOTED} should be visible',
          aliases=[rf'{QUOTED} should be visible'],
          params=[("selector", "string", "Element selector")],
          examples=['Then the element "#banner" should be visible']),
    _step("should_not_see", "Verification", "Assert that text is not on the page",
          rf'I should not see {QUOTED}', params=[("text", "string", "Text")]),
    _step("should_see_text", "Verification", "Assert that the page contains text",
          rf'the page should contain {QUOTED}', aliases=[rf'I should see text {QUOTED}'],
          params=[("text", "string", "Text")]),
    _step("should_see", "Verification", "Assert that text is visible on the page",
          rf'I should see {QUOTED}', params=[("text", "string", "Text")],
          examples=['Then I should see "Welcome"']),
    _step("element_count", "Verification", "Assert the number of matching elements",
          rf'I should see (\d+) {QUOTED} elements?',
          params=[("count", "integer", "Expected count"), ("selector", "string", "Element selector")]),
    _step("element_should_contain", "Verification", "Assert that an element contains text",
          rf'the element {QUOTED} should contain {QUOTED}',
          params=[("selector", "string", "Element selector"), ("text", "string", "Text")]),
    _step("title_should_be", "Verification", "Assert the page title",
          rf'the page title should be {QUOTED}', aliases=[rf'the title should be {QUOTED}'],
          params=[("title", "string", "Expected title")],
          examples=['Then the page title should be "Dashboard"']),
    _step("title_should_contain", "Verification", "Assert that the page title contains text",
          rf'the page title should contain {QUOTED}', params=[("text", "string", "Text")]),
    _step("url_should_contain", "Verification", "Assert that the current URL contains text",
          rf'the URL should contain {QUOTED}', params=[("text", "string", "Text")]),
    _step("attribute_should_be", "Verification", "Assert the value of an element attribute",
          rf'the {QUOTED} attribute of {QUOTED} should be {QUOTED}',
          params=[("attribute", "string", "Attribute name"), ("selector", "string", "Element selector"),
                  ("value", "string", "Expected value")]),

    # Other
    _step("screenshot", "Other", "Take a screenshot, optionally named",
          rf'I take a screenshot(?: named {QUOTED})?',
          params=[("name", "string", "File name without extension", False)]),
]


def build_step_catalog() -> StepCatalog:
    """Catalog of the built-in steps"""
    catalog = StepCatalog()
    for step in BUILTIN_STEPS:
        catalog.add_step(step)
    return catalog


def build_step_registry() -> StepPatternRegistry:
    """Registry of the built-in step patterns in table order"""
    registry = StepPatternRegistry()
    for step in BUILTIN_STEPS:
        registry.register_aliases(step.id, step.pattern, step.aliases)

    for warning in registry.validate():
        logger.warning(f"Duplicate step pattern: {warning}")

    logger.debug(f"Built step registry with {len(registry)} patterns")
    return registry
