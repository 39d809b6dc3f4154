import pytest

from criador_mental.core.errors import ValidationFailure
from criador_mental.document.commands import (
    AddInstruction,
    AddKeyword,
    AddPage,
    RemoveInstruction,
    RemoveKeyword,
    RemovePage,
    RenamePage,
    RestoreVersion,
    SaveVersion,
    SelectPage,
    ToggleContextPage,
    apply_command,
    command_adapter,
)
from criador_mental.document.models import MASTER_PAGE_ID, Page, Snapshot, new_project_pages


def _apply(snapshot, command):
    return snapshot.merged(apply_command(snapshot, command))


@pytest.fixture
def three_pages():
    return Snapshot(
        pages=(
            new_project_pages()[0],
            Page(id="a", name="A", keywords=("k1",), context_page_ids=("b",)),
            Page(id="b", name="B", keywords=("k2",), generated_image="http://img/b.png"),
        ),
        active_page_index=2,
    )


def test_adapter_parses_tagged_json():
    command = command_adapter.validate_python({"kind": "add_keyword", "text": "Brain"})
    assert isinstance(command, AddKeyword)
    with pytest.raises(ValueError):
        command_adapter.validate_python({"kind": "explode"})


def test_add_page_becomes_active():
    snapshot = _apply(Snapshot(pages=new_project_pages()), AddPage(name="  Ideas "))
    assert len(snapshot.pages) == 2
    assert snapshot.active_page.name == "Ideas"
    assert snapshot.active_page_index == 1


def test_remove_page_cleans_context_and_active_index(three_pages):
    snapshot = _apply(three_pages, RemovePage(page_id="b"))
    assert [p.id for p in snapshot.pages] == [MASTER_PAGE_ID, "a"]
    assert snapshot.find_page("a").context_page_ids == ()
    assert snapshot.active_page_index == 1


def test_remove_page_before_active_shifts_index(three_pages):
    snapshot = _apply(three_pages, RemovePage(page_id="a"))
    assert snapshot.active_page.id == "b"


def test_master_page_cannot_be_removed(three_pages):
    with pytest.raises(ValidationFailure):
        apply_command(three_pages, RemovePage(page_id=MASTER_PAGE_ID))


def test_rename_page(three_pages):
    snapshot = _apply(three_pages, RenamePage(page_id="a", name="Renamed"))
    assert snapshot.find_page("a").name == "Renamed"
    with pytest.raises(ValidationFailure):
        apply_command(three_pages, RenamePage(page_id="a", name="   "))


def test_select_page(three_pages):
    assert _apply(three_pages, SelectPage(index=0)).active_page_index == 0
    with pytest.raises(ValidationFailure):
        apply_command(three_pages, SelectPage(index=3))


def test_keywords_target_active_page(three_pages):
    snapshot = _apply(three_pages, AddKeyword(text=" Light "))
    assert snapshot.find_page("b").keywords == ("k2", "Light")
    snapshot = _apply(snapshot, RemoveKeyword(index=0))
    assert snapshot.find_page("b").keywords == ("Light",)


def test_empty_keyword_rejected(three_pages):
    with pytest.raises(ValidationFailure):
        apply_command(three_pages, AddKeyword(text="  "))


def test_instructions_target_active_page(three_pages):
    snapshot = _apply(three_pages, AddInstruction(text="Use blue"))
    assert snapshot.find_page("b").instructions == ("Use blue",)
    snapshot = _apply(snapshot, RemoveInstruction(index=0))
    assert snapshot.find_page("b").instructions == ()
    with pytest.raises(ValidationFailure):
        apply_command(snapshot, RemoveInstruction(index=0))


def test_master_keywords_are_not_editable(three_pages):
    on_master = three_pages.merged(apply_command(three_pages, SelectPage(index=0)))
    with pytest.raises(ValidationFailure):
        apply_command(on_master, AddKeyword(text="x"))
    with pytest.raises(ValidationFailure):
        apply_command(on_master, AddInstruction(text="x"))


def test_toggle_context_page(three_pages):
    snapshot = _apply(three_pages, ToggleContextPage(page_id="b", context_page_id="a"))
    assert snapshot.find_page("b").context_page_ids == ("a",)
    snapshot = _apply(snapshot, ToggleContextPage(page_id="b", context_page_id="a"))
    assert snapshot.find_page("b").context_page_ids == ()


def test_toggle_context_rejects_master_and_self(three_pages):
    with pytest.raises(ValidationFailure):
        apply_command(three_pages, ToggleContextPage(page_id="b", context_page_id=MASTER_PAGE_ID))
    with pytest.raises(ValidationFailure):
        apply_command(three_pages, ToggleContextPage(page_id="b", context_page_id="b"))


def test_save_and_restore_version(three_pages):
    snapshot = _apply(three_pages, SaveVersion(page_id="b"))
    page = snapshot.find_page("b")
    assert page.versions == ("http://img/b.png",)

    changed = snapshot.merged(
        apply_command(snapshot, RestoreVersion(page_id="b", index=0))
    )
    assert changed.find_page("b").generated_image == "http://img/b.png"

    with pytest.raises(ValidationFailure):
        apply_command(snapshot, RestoreVersion(page_id="b", index=5))


def test_save_version_requires_image(three_pages):
    with pytest.raises(ValidationFailure):
        apply_command(three_pages, SaveVersion(page_id="a"))


def test_unknown_page_rejected(three_pages):
    with pytest.raises(ValidationFailure):
        apply_command(three_pages, RenamePage(page_id="missing", name="x"))
