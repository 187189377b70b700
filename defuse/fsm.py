from __future__ import annotations

from enum import StrEnum

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from defuse.core.events import EventKind
from defuse.errors import InvalidTransition


class AppState(StrEnum):
    main_menu = "main_menu"
    section_select = "section_select"
    mission_select = "mission_select"
    free_play_menu = "free_play_menu"
    free_play_advanced = "free_play_advanced"
    loading = "loading"
    bomb_selection = "bomb_selection"
    bomb_view = "bomb_view"
    module_active = "module_active"
    game_over = "game_over"


class AppFSM(StateMachine):
    """Screen graph for one session.

    The FSM only guards transitions; side effects (context updates, building the bomb, routing answers)
    are applied by `defuse.state_machine.StateMachine` once the transition is known to be allowed.
    """

    main_menu = State(AppState.main_menu.value, value=AppState.main_menu.value, initial=True)
    section_select = State(AppState.section_select.value, value=AppState.section_select.value)
    mission_select = State(AppState.mission_select.value, value=AppState.mission_select.value)
    free_play_menu = State(AppState.free_play_menu.value, value=AppState.free_play_menu.value)
    free_play_advanced = State(AppState.free_play_advanced.value, value=AppState.free_play_advanced.value)
    loading = State(AppState.loading.value, value=AppState.loading.value)
    bomb_selection = State(AppState.bomb_selection.value, value=AppState.bomb_selection.value)
    bomb_view = State(AppState.bomb_view.value, value=AppState.bomb_view.value)
    module_active = State(AppState.module_active.value, value=AppState.module_active.value)
    # Not `final`: reset leads back to the main menu.
    game_over = State(AppState.game_over.value, value=AppState.game_over.value)

    select_campaign = main_menu.to(section_select)
    select_free_play = main_menu.to(free_play_menu)
    choose_section = section_select.to(mission_select)
    choose_mission = mission_select.to(loading)
    choose_quick_config = free_play_menu.to(loading)
    open_advanced = free_play_menu.to(free_play_advanced)
    confirm_config = free_play_advanced.to(loading)
    config_built = loading.to(bomb_selection)
    select_module = bomb_selection.to(module_active) | bomb_view.to(module_active)
    submit_answer = module_active.to(bomb_view)

    go_back = (
        section_select.to(main_menu)
        | mission_select.to(section_select)
        | free_play_menu.to(main_menu)
        | free_play_advanced.to(free_play_menu)
        | module_active.to(bomb_selection)
        | bomb_view.to(bomb_selection)
    )
    cancel_loading = loading.to(main_menu)
    restart = game_over.to(main_menu)

    # Driven by ticks once the bomb leaves the arming state.
    bomb_exploded = bomb_selection.to(game_over) | bomb_view.to(game_over) | module_active.to(game_over)
    bomb_defused = bomb_selection.to(game_over) | bomb_view.to(game_over) | module_active.to(game_over)

    def __init__(self, state: AppState = AppState.main_menu):
        super().__init__(start_value=state.value)

    @property
    def app_state(self) -> AppState:
        return AppState(str(self.current_state.value))


# Discrete input events -> FSM event names. Ticks are not listed: they never fail as transitions.
FSM_EVENTS: dict[EventKind, str] = {
    EventKind.select_campaign: "select_campaign",
    EventKind.select_free_play: "select_free_play",
    EventKind.choose_section: "choose_section",
    EventKind.choose_mission: "choose_mission",
    EventKind.choose_quick_config: "choose_quick_config",
    EventKind.open_advanced: "open_advanced",
    EventKind.confirm_config: "confirm_config",
    EventKind.config_built: "config_built",
    EventKind.select_module: "select_module",
    EventKind.submit_answer: "submit_answer",
    EventKind.back: "go_back",
    EventKind.cancel: "cancel_loading",
    EventKind.reset: "restart",
}


def next_state(state: AppState, fsm_event: str) -> AppState:
    """Fold one FSM event over `state` without touching any session data.

    Raises InvalidTransition if the event is not allowed from `state`.
    """

    fsm = AppFSM(state)
    try:
        fsm.send(fsm_event)
    except TransitionNotAllowed as e:
        raise InvalidTransition(f"Event '{fsm_event}' not allowed in state '{state.value}'") from e
    return fsm.app_state
