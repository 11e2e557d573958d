import pytest

from dockscope.inspectors import MetricsInspector, TextInspector
from dockscope.model import ServiceInfo, VolumeInfo
from dockscope.state import ERROR, INFO, SUCCESS

from conftest import settle


def press(controller, *keys):
    for key in keys:
        character = key if len(key) == 1 else None
        controller.submit_key(key, character)


def type_text(controller, text):
    for ch in text:
        controller.submit_key(ch, ch)


@pytest.fixture
def loaded(controller):
    controller.scheduler.trigger()
    settle(controller)
    return controller


def visible_ids(controller):
    return [r.id for r in controller.view.rows]


def test_initial_refresh_loads_default_view(loaded):
    assert loaded.state.page == "containers"
    assert visible_ids(loaded) == ["c1", "c2", "c3"]
    assert loaded.frame().title == "CONTAINERS (3)"


def test_drill_down_and_back(loaded):
    loaded.switch_view("compose")
    settle(loaded)
    assert visible_ids(loaded) == ["blog", "shop"]

    press(loaded, "down", "enter")
    settle(loaded)
    assert loaded.state.page == "containers"
    assert loaded.state.scopes.top.value == "shop"
    assert visible_ids(loaded) == ["c1", "c2"]
    assert loaded.frame().breadcrumb == "<compose: shop> > containers"

    press(loaded, "escape")
    settle(loaded)
    assert loaded.state.page == "compose"
    assert not loaded.state.scopes
    assert loaded.view.current_id() == "shop"


def test_view_command_clears_scope(loaded):
    loaded.switch_view("compose")
    settle(loaded)
    press(loaded, "enter")
    assert loaded.state.scopes

    press(loaded, ":")
    type_text(loaded, "images")
    assert loaded.frame().input_line == ":images"
    press(loaded, "enter")

    assert loaded.state.page == "images"
    assert not loaded.state.scopes
    assert loaded.input_mode is None


def test_unknown_command_flashes(loaded):
    loaded.run_command("bogus")
    assert loaded.state.flash.level == ERROR
    assert loaded.state.page == "containers"


def test_quit_command(loaded):
    press(loaded, ":")
    type_text(loaded, "q")
    press(loaded, "enter")
    assert not loaded.state.running


def test_filter_typing_updates_rows(loaded):
    press(loaded, "/")
    type_text(loaded, "web")
    assert visible_ids(loaded) == ["c1"]
    frame = loaded.frame()
    assert frame.input_line == "/web"
    assert frame.breadcrumb == "containers <filter: web>"

    press(loaded, "backspace")
    assert loaded.view.user_filter == "we"

    press(loaded, "enter")
    assert loaded.input_mode is None
    assert loaded.view.user_filter == "we"


def test_escape_clears_filter_then_selection_then_scope(loaded):
    loaded.switch_view("compose")
    settle(loaded)
    press(loaded, "enter")
    settle(loaded)
    loaded.view.set_filter("web")
    loaded.view.toggle_selection("c3")

    press(loaded, "escape")
    assert loaded.view.user_filter == ""
    assert loaded.view.selected_ids == {"c3"}

    press(loaded, "escape")
    assert loaded.view.selected_ids == set()
    assert loaded.state.page == "containers"

    press(loaded, "escape")
    assert loaded.state.page == "compose"


def test_switch_view_resets_filter(loaded):
    loaded.view.set_filter("web")
    loaded.switch_view("images")
    loaded.switch_view("containers")
    assert loaded.view.user_filter == ""


def test_start_restart_picks_verb_per_container(loaded, adapter):
    press(loaded, "space", "down", "space")
    assert loaded.view.selected_ids == {"c1", "c2"}

    press(loaded, "r")
    assert loaded.view.pending_by_id == {"c1": "Updating", "c2": "Updating"}
    settle(loaded)

    assert adapter.mutations == [
        ("containers", "c1", "restart", {}),
        ("containers", "c2", "start", {}),
    ]
    assert loaded.state.flash.level == SUCCESS
    assert loaded.view.selected_ids == set()


def test_partial_failure_shows_result(loaded, adapter):
    adapter.failing_ids["c2"] = "conflict"
    loaded.view.select_all()
    press(loaded, "x")
    settle(loaded)

    frame = loaded.frame()
    assert frame.result_title == "Stopping: 1 of 3 failed"
    assert frame.result_lines == ["c2: conflict"]

    assert not loaded.submit_key("down")
    assert loaded.submit_key("enter")
    assert loaded.state.action_result is None


def test_remove_asks_for_confirmation(loaded, adapter):
    press(loaded, "ctrl+d")
    prompt = loaded.state.prompt
    assert prompt.kind == "confirm"
    assert prompt.allow_force
    assert prompt.message == "Remove c1?"

    loaded.answer_prompt("force")
    assert loaded.state.prompt is None
    settle(loaded)
    assert adapter.mutations == [("containers", "c1", "remove", {"force": True})]


def test_remove_cancelled(loaded, adapter):
    press(loaded, "ctrl+d")
    loaded.answer_prompt(False)
    settle(loaded)
    assert adapter.mutations == []
    assert loaded.state.flash.level == INFO


def test_keys_ignored_while_prompt_open(loaded):
    press(loaded, "ctrl+d")
    assert not loaded.submit_key("down")


def test_prune_runs_after_confirmation(loaded, adapter):
    press(loaded, "ctrl+p")
    loaded.answer_prompt(True)
    settle(loaded)
    assert adapter.pruned == ["containers"]
    assert loaded.state.flash.text == "Pruned 0 containers"


def test_scale_service(loaded, adapter):
    adapter.resources["services"] = [
        ServiceInfo(id="s1", name="api", image="api:1", mode="replicated", replicas="1/1"),
    ]
    loaded.switch_view("services")
    settle(loaded)

    press(loaded, "s")
    assert loaded.state.prompt.kind == "input"
    loaded.answer_prompt("3")
    settle(loaded)
    assert adapter.mutations == [("services", "s1", "scale", {"replicas": 3})]


def test_scale_rejects_invalid_count(loaded, adapter):
    adapter.resources["services"] = [
        ServiceInfo(id="s1", name="api", image="api:1", mode="replicated", replicas="1/1"),
    ]
    loaded.switch_view("services")
    settle(loaded)

    press(loaded, "s")
    loaded.answer_prompt("many")
    assert loaded.state.flash.level == ERROR
    assert adapter.mutations == []


def test_shell_prompt_and_external_run(loaded):
    press(loaded, "e")
    prompt = loaded.state.prompt
    assert prompt.kind == "external"
    assert prompt.argv[:4] == ["docker", "exec", "-it", "c1"]

    seen = []
    returncode = loaded.run_external(lambda: seen.append(loaded.scheduler.paused) or 2)
    assert seen == [True]
    assert not loaded.scheduler.paused

    loaded.answer_prompt(returncode)
    assert loaded.state.flash.level == ERROR


def test_describe_suspends_view_refresh(loaded):
    press(loaded, "d")
    assert isinstance(loaded.state.inspector, TextInspector)
    assert loaded.scheduler.is_suspended("containers")
    assert loaded.frame().inspector_title == "Describe(web) [text]"

    press(loaded, "escape")
    assert loaded.state.inspector is None
    assert not loaded.scheduler.is_suspended("containers")


def test_metrics_only_for_containers(loaded):
    press(loaded, "t")
    inspector = loaded.state.inspector
    assert isinstance(inspector, MetricsInspector)
    loaded.close_inspector()
    assert inspector.closed

    loaded.switch_view("images")
    loaded.metrics()
    assert loaded.state.inspector is None
    assert loaded.state.flash.level == ERROR


def test_switch_view_closes_inspector(loaded):
    press(loaded, "l")
    inspector = loaded.state.inspector
    loaded.switch_view("images")
    assert inspector.closed
    assert loaded.state.inspector is None


def test_container_volumes_drill(loaded, adapter):
    adapter.resources["volumes"] = [
        VolumeInfo(name="data", driver="local", mountpoint="/data", container_ids=frozenset({"c1"})),
        VolumeInfo(name="other", driver="local", mountpoint="/other"),
    ]
    press(loaded, "v")
    settle(loaded)
    assert loaded.state.page == "volumes"
    assert visible_ids(loaded) == ["data"]
    assert loaded.frame().breadcrumb == "<containers: web> > volumes"


def test_sort_keys_reorder(loaded):
    press(loaded, "shift+right")
    assert loaded.view.sort_column == 1
    assert visible_ids(loaded) == ["c3", "c2", "c1"]
    press(loaded, "shift+up")
    assert visible_ids(loaded) == ["c1", "c2", "c3"]


@pytest.mark.parametrize("page", ["volumes", "networks"])
def test_create_asks_for_name(loaded, adapter, page):
    loaded.switch_view(page)
    settle(loaded)

    press(loaded, "c")
    prompt = loaded.state.prompt
    assert prompt.kind == "input"
    assert prompt.message == f"Name for new {page[:-1]}:"

    loaded.answer_prompt("scratch")
    settle(loaded)
    assert adapter.created == [(page, "scratch", {})]
    assert loaded.state.flash.level == SUCCESS
    assert loaded.state.flash.text == f"Created {page[:-1]} scratch"


def test_create_secret_asks_for_data(loaded, adapter):
    loaded.switch_view("secrets")
    settle(loaded)

    press(loaded, "c")
    loaded.answer_prompt("api-key")
    prompt = loaded.state.prompt
    assert prompt.kind == "input"
    assert prompt.message == "Data for secret api-key:"
    assert adapter.created == []

    loaded.answer_prompt("s3cret")
    settle(loaded)
    assert adapter.created == [("secrets", "api-key", {"data": "s3cret"})]


def test_create_cancelled_without_name(loaded, adapter):
    loaded.switch_view("volumes")
    settle(loaded)
    press(loaded, "c")
    loaded.answer_prompt(None)
    settle(loaded)
    assert adapter.created == []
    assert loaded.state.flash.level == INFO


def test_create_key_ignored_on_containers(loaded):
    assert not loaded.submit_key("c", "c")
    assert loaded.state.prompt is None


def test_edit_compose_project_opens_editor(loaded):
    loaded.config.docker.editor = "nano"
    loaded.switch_view("compose")
    settle(loaded)
    press(loaded, "down")

    press(loaded, "e")
    prompt = loaded.state.prompt
    assert prompt.kind == "external"
    assert prompt.argv == ["nano", "/srv/shop/compose.yaml"]

    loaded.answer_prompt(0)
    assert loaded.state.prompt is None


def test_edit_without_compose_file_flashes(loaded):
    loaded.switch_view("compose")
    settle(loaded)
    press(loaded, "e")
    assert loaded.state.prompt is None
    assert loaded.state.flash.level == ERROR
    assert "blog" in loaded.state.flash.text


def test_help_lists_key_bindings(loaded):
    press(loaded, "?")
    prompt = loaded.state.prompt
    assert prompt.kind == "help"
    assert f"{'x':<12} stop" in prompt.lines
    assert f"{'ctrl+d':<12} remove" in prompt.lines

    loaded.answer_prompt(None)
    assert loaded.state.prompt is None


def test_host_header(loaded, adapter):
    assert loaded.frame().header == "host: connecting..."
    assert loaded.refresh_host()
    assert not loaded.refresh_host()
    settle(loaded)

    assert loaded.frame().header == (
        "host: dev | docker 24.0.7 | cpu 8 | mem 16.0 GB | containers 2/3 | images 5 | user alice"
    )


def test_host_header_keeps_last_value_on_error(loaded, adapter):
    loaded.refresh_host()
    settle(loaded)
    adapter.host = RuntimeError("daemon gone")
    assert loaded.refresh_host()
    settle(loaded)
    assert loaded.frame().header.startswith("host: dev")
    assert loaded.refresh_host()
