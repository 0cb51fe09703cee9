from prompt_toolkit.keys import Keys

from gh_project_board.ui import translate_key


def test_named_keys():
    assert translate_key(Keys.Escape) == "esc"
    assert translate_key(Keys.ControlM) == "enter"
    assert translate_key(Keys.BackTab) == "shift+tab"
    assert translate_key(Keys.ControlC) == "ctrl+c"


def test_printable_data():
    assert translate_key(Keys.Any, "j") == "j"
    assert translate_key(Keys.Any, "G") == "G"
    assert translate_key(Keys.Any, " ") == "space"
    assert translate_key(Keys.Any, "日") == "日"


def test_unmapped_keys_are_dropped():
    assert translate_key(Keys.F5, "\x1b[15~") is None
    assert translate_key(Keys.Any, "") is None
