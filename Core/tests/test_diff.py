from __future__ import annotations

from selector_engine.core.diff import compare_markup, summarize_diff

BEFORE = '<div id="root"><button id="save" class="primary">Save</button><a href="/help">Help</a></div>'
AFTER = '<div id="root"><button id="save" class="primary large">Save now</button><input name="q"></div>'


def _paths(elements):
    return [element.css_path for element in elements]


def test_added_removed_and_modified():
    result = compare_markup(BEFORE, AFTER)
    assert _paths(result.added) == ["#root > input"]
    assert _paths(result.removed) == ["#root > a"]
    assert len(result.modified) == 1
    modified = result.modified[0]
    assert modified.before.text == "Save"
    assert modified.after.text == "Save now"
    assert modified.changes == ['text: "Save" -> "Save now"', "classes changed"]


def test_diff_is_symmetric():
    forward = compare_markup(BEFORE, AFTER)
    backward = compare_markup(AFTER, BEFORE)
    assert _paths(forward.added) == _paths(backward.removed)
    assert _paths(forward.removed) == _paths(backward.added)


def test_identical_elements_are_not_modified():
    assert compare_markup(BEFORE, BEFORE).modified == []
    reordered = compare_markup(
        '<div><button id="save" class="a b">Save</button></div>',
        '<div><button id="save" class="b a">Save</button></div>',
    )
    assert reordered.modified == []
    assert reordered.added == []
    assert reordered.removed == []


def test_dynamic_id_change_is_reported_on_same_path():
    result = compare_markup(
        '<div id="root"><button id="btn-12345">Go</button></div>',
        '<div id="root"><button id="btn-67890">Go</button></div>',
    )
    assert result.added == []
    assert result.removed == []
    assert result.modified[0].changes == ['id: "btn-12345" -> "btn-67890"']


def test_sibling_insertion_shifts_existing_element_path():
    before = '<nav id="menu"><a class="nav" href="/home">Home</a></nav>'
    after = '<nav id="menu"><a class="nav" href="/home">Home</a><a class="nav" href="/shop">Shop</a></nav>'
    result = compare_markup(before, after)
    assert [element.text for element in result.added] == ["Home", "Shop"]
    assert [element.text for element in result.removed] == ["Home"]
    assert result.modified == []


def test_sibling_insertion_in_a_fragment():
    before = '<a class="nav" href="/">Home</a>'
    after = '<a class="nav" href="/">Home</a><a class="nav" href="/shop">Shop</a>'
    result = compare_markup(before, after)
    assert [element.text for element in result.added] == ["Home", "Shop"]
    assert _paths(result.added) == ["a.nav:nth-child(1)", "a.nav:nth-child(2)"]
    assert [element.text for element in result.removed] == ["Home"]
    assert result.modified == []


def test_mismatched_documents_do_not_raise():
    result = compare_markup("", "<button>New</button>")
    assert _paths(result.added) == ["button"]
    assert compare_markup("<p>text</p>", "not markup").added == []


def test_summarize_diff():
    changes = summarize_diff(compare_markup(BEFORE, AFTER))
    assert changes.added == ["#root > input"]
    assert changes.removed == ["#root > a"]
    assert changes.modified == ['#save: text: "Save" -> "Save now", classes changed']
