"""
Screen selection: maps a session machine to a template and its context.

Pure function of the machine state so it can be tested without a request.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from alia.flow import ErrorState, FormState
from alia.session import Screen, SessionMachine
from alia.text_formatter import format_for_display


@dataclass(frozen=True)
class ScreenView:
    screen: Screen
    template: str
    context: Dict[str, Any] = field(default_factory=dict)


TEMPLATES = {
    Screen.LOADING: "screens/loading.html",
    Screen.LOGIN: "auth/login.html",
    Screen.FORM: "screens/form.html",
    Screen.ANALYZING: "screens/analyzing.html",
    Screen.RESULT: "screens/result.html",
    Screen.ERROR: "screens/error.html",
    Screen.UPGRADE: "screens/upgrade.html",
}


def screen_view(machine: SessionMachine) -> ScreenView:
    screen = machine.screen
    session = machine.session
    context: Dict[str, Any] = {"screen": screen.value, "profile": session.profile}

    if screen == Screen.FORM:
        state = machine.flow.state
        if isinstance(state, FormState):
            context["errors"] = state.errors
            context["form"] = state.form
        else:
            context["errors"] = {}
            context["form"] = FormState().form
    elif screen == Screen.RESULT:
        analysis = machine.current_analysis
        context["analysis"] = analysis
        context["analysis_html"] = format_for_display(analysis.analysis)
        context["recommendations_html"] = format_for_display(analysis.recommendations)
    elif screen == Screen.ERROR:
        state = machine.flow.state
        context["error"] = state.message if isinstance(state, ErrorState) else ""

    return ScreenView(screen=screen, template=TEMPLATES[screen], context=context)
