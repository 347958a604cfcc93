"""Tests for document normalization."""

import pytest

from tmux_layout.errors import ErrorReport, ParseError, ValidationError
from tmux_layout.models import Pane, Project, SplitDirection, Window
from tmux_layout.normalizer import (
    build_project,
    command_list,
    normalize_command,
    normalize_document,
    resolve_pane,
    tmux_command_for,
)


def only_window(project: Project) -> Window:
    assert len(project.windows) == 1
    return project.windows[0]


class TestCommandNormalization:
    """Tests for command strings."""

    def test_carriage_returns_are_stripped(self):
        assert normalize_command("make\r") == "make"

    def test_newlines_become_spaces(self):
        assert normalize_command("echo a\r\necho b") == "echo a echo b"

    def test_multiline_yaml_style_command(self):
        assert command_list("cd src &&\nmake\n", "pane") == ("cd src && make ",)

    def test_numbers_are_commands(self):
        assert command_list([1, "ls"], "pane") == ("1", "ls")

    def test_nested_list_is_rejected(self):
        with pytest.raises(ParseError) as exc_info:
            command_list(["ls", ["nested"]], "windows[0].pane_commands")
        assert exc_info.value.path == "windows[0].pane_commands[1]"


class TestWindowShorthand:
    """Tests for the different ways of writing a window."""

    def test_bare_string_window(self):
        project = build_project({"session_name": "dev", "windows": ["echo hi"]})
        window = only_window(project)
        assert window.name is None
        assert window.panes == (Pane(index=1, commands=("echo hi",)),)

    def test_list_window_has_one_pane_per_command(self):
        project = build_project({"session_name": "dev", "windows": [["vim", "htop"]]})
        window = only_window(project)
        assert [pane.commands for pane in window.panes] == [("vim",), ("htop",)]

    def test_named_window_with_panes(self):
        project = build_project({"session_name": "dev", "windows": [{"editor": ["vim", "htop"]}]})
        window = only_window(project)
        assert window.name == "editor"
        assert len(window.panes) == 2

    def test_named_window_with_nested_definition(self):
        project = build_project({
            "session_name": "dev",
            "windows": [{"editor": {"layout": "tiled", "panes": ["a", "b"]}}],
        })
        window = only_window(project)
        assert window.name == "editor"
        assert window.layout == "tiled"

    def test_named_window_followed_by_fields(self):
        project = build_project({
            "session_name": "dev",
            "windows": [{"editor": ["vim"], "working_dir": "/srv"}],
        })
        window = only_window(project)
        assert window.name == "editor"
        assert window.working_dir == "/srv"

    def test_entry_name_beats_name_field(self):
        project = build_project({
            "session_name": "dev",
            "windows": [{"editor": None, "name": "other"}],
        })
        assert only_window(project).name == "editor"

    def test_null_key_is_unnamed_entry(self):
        project = build_project({"session_name": "dev", "windows": [{None: ["a", "b"]}]})
        window = only_window(project)
        assert window.name is None
        assert len(window.panes) == 2

    def test_empty_key_is_unnamed_entry(self):
        project = build_project({"session_name": "dev", "windows": [{"": "vim"}]})
        window = only_window(project)
        assert window.name is None
        assert window.panes[0].commands == ("vim",)

    def test_null_key_must_come_first(self):
        with pytest.raises(ValidationError):
            build_project({"session_name": "dev", "windows": [{"editor": "vim", None: "x"}]})

    def test_boolean_shorthand_is_ambiguous(self):
        with pytest.raises(ValidationError):
            build_project({"session_name": "dev", "windows": [{"editor": True}]})

    def test_empty_mapping_is_rejected(self):
        with pytest.raises(ValidationError):
            build_project({"session_name": "dev", "windows": [{}]})

    def test_single_window_without_list(self):
        project = build_project({"session_name": "dev", "windows": {"editor": "vim"}})
        window = only_window(project)
        assert window.name == "editor"
        assert window.panes[0].commands == ("vim",)

    def test_null_window_is_default(self):
        project = build_project({"session_name": "dev", "windows": [None, "ls"]})
        assert project.windows[0].panes == (Pane(index=1),)
        assert project.windows[1].index == 2


class TestPaneShorthand:
    """Tests for the different ways of writing a pane."""

    def test_named_pane_with_commands(self):
        project = build_project({
            "session_name": "dev",
            "windows": [{"panes": [{"logs": ["cd /var/log", "tail -f syslog"]}]}],
        })
        pane = only_window(project).panes[0]
        assert pane.name == "logs"
        assert pane.commands == ("cd /var/log", "tail -f syslog")

    def test_command_alias(self):
        project = build_project({
            "session_name": "dev",
            "windows": [{"panes": [{"command": "ls"}]}],
        })
        assert only_window(project).panes[0].commands == ("ls",)

    def test_split_fields(self):
        project = build_project({
            "session_name": "dev",
            "windows": [{"panes": [None, {"split": "v", "split_size": 30, "clear": True}]}],
        })
        pane = only_window(project).panes[1]
        assert pane.split is SplitDirection.VERTICAL
        assert pane.split_size == "30"
        assert pane.clear is True

    def test_percentage_size_is_kept(self):
        project = build_project({
            "session_name": "dev",
            "windows": [{"panes": [None, {"split_size": "25%"}]}],
        })
        assert only_window(project).panes[1].split_size == "25%"

    @pytest.mark.parametrize("size", ["wide", "0%", 0, -3])
    def test_invalid_split_size(self, size):
        with pytest.raises(ValidationError) as exc_info:
            build_project({
                "session_name": "dev",
                "windows": [{"panes": [None, {"split_size": size}]}],
            })
        assert exc_info.value.path == "windows[0].panes[1].split_size"

    def test_invalid_split_direction(self):
        with pytest.raises(ValidationError):
            build_project({
                "session_name": "dev",
                "windows": [{"panes": [None, {"split": "diagonal"}]}],
            })

    def test_unknown_pane_field(self):
        with pytest.raises(ValidationError) as exc_info:
            build_project({
                "session_name": "dev",
                "windows": [{"panes": [{"commands": "ls", "colour": "red"}]}],
            })
        assert exc_info.value.context["field"] == "colour"


class TestProjectFields:
    """Tests for project level fields and aliases."""

    def test_name_alias(self):
        assert build_project({"name": "dev"}).session_name == "dev"

    def test_canonical_name_wins_over_alias(self):
        project = build_project({"name": "alias", "session_name": "canonical"})
        assert project.session_name == "canonical"

    def test_alias_conflict_is_reported(self):
        report = ErrorReport()
        build_project({"name": "alias", "session_name": "canonical"}, report=report)
        assert not report.has_errors()
        assert len(report.warnings) == 1
        assert report.warnings[0].context == {
            "path": "", "field": "session_name", "kept": "session_name", "ignored": "name",
        }

    def test_window_alias_conflict_is_reported(self):
        report = ErrorReport()
        build_project({"session_name": "dev", "windows": [{"name": "a", "title": "b"}]}, report=report)
        assert [warning.context["path"] for warning in report.warnings] == ["windows[0]"]

    def test_matching_aliases_are_not_reported(self):
        report = ErrorReport()
        build_project({"name": "dev", "session_name": "dev"}, report=report)
        assert report.warnings == []

    def test_hook_aliases(self):
        project = build_project({
            "session_name": "dev",
            "on_project_start": "echo start",
            "on_create": "echo first",
            "tmux_detached": True,
        })
        assert project.on_start == ("echo start",)
        assert project.on_first_start == ("echo first",)
        assert project.attach is False

    def test_unknown_field(self):
        with pytest.raises(ValidationError) as exc_info:
            build_project({"session_name": "dev", "colour": "red"})
        assert "colour" in str(exc_info.value)

    def test_defaults(self):
        project = build_project({"session_name": "dev"})
        assert project.attach is True
        assert project.window_base_index == 1
        window = only_window(project)
        assert window.index == 1
        assert window.panes == (Pane(index=1),)

    def test_base_indices(self):
        project = build_project({
            "session_name": "dev",
            "window_base_index": 0,
            "pane_base_index": 0,
            "windows": [["a", "b"], "c"],
        })
        assert [window.index for window in project.windows] == [0, 1]
        assert [pane.index for pane in project.windows[0].panes] == [0, 1]

    def test_project_name_is_default_session_name(self):
        project = build_project({"windows": ["ls"]}, project_name="from-file")
        assert project.session_name == "from-file"

    def test_document_name_beats_project_name(self):
        project = build_project({"session_name": "dev"}, project_name="from-file")
        assert project.session_name == "dev"

    def test_empty_session_name_uses_project_name(self):
        project = build_project({"session_name": "", "windows": ["ls"]}, project_name="from-file")
        assert project.session_name == "from-file"

    def test_empty_session_name_without_project_name(self):
        assert build_project({"session_name": ""}).session_name is None

    @pytest.mark.parametrize("name", ["my.project", "a:b"])
    def test_session_name_characters(self, name):
        with pytest.raises(ValidationError):
            build_project({"session_name": name})

    def test_window_name_characters(self):
        with pytest.raises(ValidationError) as exc_info:
            build_project({"session_name": "dev", "windows": [{"name": "v1.2"}]})
        assert exc_info.value.path == "windows[0].name"


class TestAttach:
    """Tests for attach/detached resolution."""

    def test_detached(self):
        assert build_project({"session_name": "dev", "detached": True}).attach is False

    @pytest.mark.parametrize("attach, detached", [(True, True), (True, False), (False, True), (False, False)])
    def test_both_flags_are_rejected(self, attach, detached):
        with pytest.raises(ValidationError) as exc_info:
            build_project({"session_name": "dev", "attach": attach, "detached": detached})
        assert exc_info.value.path == "attach"

    def test_aliases_of_both_flags_are_rejected(self):
        with pytest.raises(ValidationError):
            build_project({"session_name": "dev", "tmux_attached": True, "tmux_detached": False})

    def test_force_attach_overrides_document(self):
        project = build_project({"session_name": "dev", "detached": True}, force_attach=True)
        assert project.attach is True


class TestWorkingDir:
    """Tests for working directory handling."""

    def test_null_means_home(self, home):
        project = build_project({"session_name": "dev", "working_dir": None})
        assert project.working_dir == home

    def test_tilde_is_expanded(self, home):
        project = build_project({"session_name": "dev", "root": "~/src"})
        assert project.working_dir == f"{home}/src"

    def test_absent_means_inherit(self):
        project = build_project({"session_name": "dev", "windows": ["ls"]})
        assert project.working_dir is None
        assert project.windows[0].working_dir is None


class TestValidation:
    """Tests for documents that must be rejected."""

    def test_layout_with_explicit_split(self):
        with pytest.raises(ValidationError) as exc_info:
            build_project({
                "session_name": "dev",
                "windows": [{"layout": "main-vertical", "panes": ["a", {"split": "v"}]}],
            })
        assert exc_info.value.path == "windows[0].panes[1].split"
        assert exc_info.value.context["pane_index"] == 2

    def test_empty_windows_list(self):
        with pytest.raises(ValidationError):
            build_project({"session_name": "dev", "windows": []})

    def test_empty_panes_list(self):
        with pytest.raises(ValidationError):
            build_project({"session_name": "dev", "windows": [{"panes": []}]})

    def test_empty_document(self):
        with pytest.raises(ValidationError):
            build_project(None)

    def test_document_without_content(self):
        with pytest.raises(ValidationError):
            build_project({"attach": True})

    def test_document_must_be_mapping(self):
        with pytest.raises(ParseError):
            build_project(["ls"])

    def test_startup_window_by_name(self):
        project = build_project({
            "session_name": "dev",
            "startup_window": "logs",
            "windows": [{"editor": "vim"}, {"logs": "tail -f log"}],
        })
        assert project.window_by_selector(project.startup_window).index == 2

    def test_unknown_startup_window(self):
        with pytest.raises(ValidationError):
            build_project({"session_name": "dev", "startup_window": "missing"})

    def test_startup_window_index_out_of_range(self):
        with pytest.raises(ValidationError):
            build_project({"session_name": "dev", "startup_window": 5, "windows": ["ls"]})

    def test_startup_pane_out_of_range(self):
        with pytest.raises(ValidationError) as exc_info:
            build_project({"session_name": "dev", "startup_pane": 3, "windows": [["a", "b"]]})
        assert exc_info.value.path == "startup_pane"


class TestInheritance:
    """Tests for resolve_pane()."""

    def test_chains_are_concatenated_outer_first(self):
        project = build_project({
            "session_name": "dev",
            "pane_commands": "source .env",
            "on_pane_create": "echo project",
            "windows": [{
                "pane_commands": "nvm use",
                "on_pane_create": "echo window",
                "panes": [{"commands": "npm start", "on_create": "echo pane"}],
            }],
        })
        window = only_window(project)
        resolved = resolve_pane(project, window, window.panes[0])
        assert resolved.commands == ("source .env", "nvm use", "npm start")
        assert resolved.on_create == ("echo project", "echo window", "echo pane")

    def test_innermost_working_dir_wins(self):
        project = build_project({
            "session_name": "dev",
            "working_dir": "/srv",
            "windows": [{"working_dir": "/srv/app", "panes": [None, {"working_dir": "/tmp"}]}],
        })
        window = only_window(project)
        assert resolve_pane(project, window, window.panes[0]).working_dir == "/srv/app"
        assert resolve_pane(project, window, window.panes[1]).working_dir == "/tmp"

    def test_inherited_chains_are_not_shared(self):
        project = build_project({"session_name": "dev", "pane_commands": "a", "windows": [["x", "y"]]})
        window = only_window(project)
        first = resolve_pane(project, window, window.panes[0])
        second = resolve_pane(project, window, window.panes[1])
        assert first.commands == ("a", "x")
        assert second.commands == ("a", "y")
        assert project.pane_commands == ("a",)

    def test_tmux_command_precedence(self):
        project = build_project({"session_name": "dev", "tmux_command": "tmux -2"})
        assert tmux_command_for(project) == "tmux -2"
        assert tmux_command_for(project, "/opt/tmux") == "/opt/tmux"
        assert tmux_command_for(build_project({"session_name": "dev"})) == "tmux"


class TestNormalizeDocument:
    """Tests for expansion followed by normalization."""

    def test_variables_are_expanded_everywhere(self, context):
        project = normalize_document(
            {"session_name": "$PROJECT", "windows": [{"${1}": "echo $2"}]},
            context,
        )
        assert project.session_name == "shop"
        window = only_window(project)
        assert window.name == "first"
        assert window.panes[0].commands == ("echo second",)

    def test_escaped_dollar_survives(self, context):
        project = normalize_document({"session_name": "dev", "windows": ["echo $$HOME"]}, context)
        assert only_window(project).panes[0].commands == ("echo $HOME",)

    def test_entry_name_expanding_to_empty_is_unnamed(self, context):
        project = normalize_document({"session_name": "dev", "windows": [{"$UNSET": "vim"}]}, context)
        window = only_window(project)
        assert window.name is None
        assert window.panes[0].commands == ("vim",)

    def test_keys_expanding_to_the_same_name(self, context):
        with pytest.raises(ParseError):
            normalize_document(
                {"session_name": "dev", "windows": [{"$A": "x", "${B}": "y"}]},
                context,
            )
