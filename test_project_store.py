#!/usr/bin/env python3
"""
Tests for the project data model and ProjectStore persistence.
"""

import json
import os
import stat

import pytest

from spica_writer.exceptions import LoadError, SaveError
from spica_writer.project import store as store_module
from spica_writer.project.models import (
    SCHEMA_VERSION, Character, Description, DraftTab, IdeaBank, PlanStep, ProjectDocument,
    ProjectMetadata, Scene, ScenePlan, Star, StarScope, StarSourceEvent, StarStatus, StarTags, TimelineEvent,
    Workbench, repair_references
)
from spica_writer.project.store import ProjectStore


def build_document() -> ProjectDocument:
    """A small but complete project with consistent cross references"""
    step = PlanStep(id="step-1", text="Anna finds the letter", fulfilled_by=["tab-1"], linked_stars=["star-1"])
    scene = Scene(
        id="scene-1",
        name="Harbor",
        setting="A foggy harbor at dawn",
        backstory=None,
        plan=ScenePlan(raw_text="1. Anna finds the letter", parsed_steps=[step]),
        draft_tab_ids=["tab-1"],
        created_at=1700000000000,
        updated_at=1700000000500
    )
    tab = DraftTab(
        id="tab-1",
        scene_id="scene-1",
        index=0,
        timeline=[
            TimelineEvent(text="Anna walks the pier.", id="ev-1"),
            TimelineEvent(text="Ben calls out", dialogue="Wait!", id="ev-2",
                          associated_stars=["star-1"], checked=False),
        ],
        descriptions=[Description(id="desc-1", text="Salt in the air", is_important=True,
                                  origin_star_id="star-1")],
        summary="Anna meets Ben.",
        fulfilled_plan_steps=["step-1"],
        suggested_plan_steps=["Reveal the letter's origin"],
        created_at=1700000001000,
        updated_at=1700000002000
    )
    parked = DraftTab(id="tab-2", index=0, created_at=1700000003000, updated_at=1700000003000)
    star = Star(
        id="star-1",
        title="The letter",
        body="Written by Anna's mother",
        tags=StarTags(characters=["char-1"], scope=StarScope.BACKSTORY, status=StarStatus.DEFERRED,
                      custom=["mystery"]),
        priority=0.75,
        is_checked=True,
        origin_draft_tab_id="tab-1",
        created_at=1700000004000,
        last_used_in_prompt=1700000005000,
        constraint_type="character_dialogue",
        applies_to_character="char-1",
        source_event=StarSourceEvent(tab_id="tab-1", event_id="ev-2", event_text="Ben calls out")
    )
    character = Character(id="char-1", name="Anna", fields={"age": "31", "goal": "Find her mother"})

    return ProjectDocument(
        version=SCHEMA_VERSION,
        metadata=ProjectMetadata(title="Fog", author="J. Doe", created_at=1700000000000,
                                 updated_at=1700000006000),
        scenes={"scene-1": scene},
        draft_tabs={"tab-1": tab, "tab-2": parked},
        stars={"star-1": star},
        characters={"char-1": character},
        plan_steps={"step-1": PlanStep(id="step-1", text="Anna finds the letter",
                                       fulfilled_by=["tab-1"], linked_stars=["star-1"])},
        idea_bank=IdeaBank(stored_draft_tab_ids=["tab-2"]),
        workbench=Workbench(),
        active_scene_id="scene-1"
    )


def write_json(path, data):
    path.write_text(json.dumps(data), encoding='utf-8')


def test_load_missing_file_returns_empty_document(tmp_path):
    path = tmp_path / "project.json"

    document = ProjectStore(project_dir=tmp_path).load_or_default(path)

    assert document.version == SCHEMA_VERSION
    assert document.scenes == {}
    assert document.draft_tabs == {}
    assert document.stars == {}
    assert document.characters == {}
    assert document.plan_steps == {}
    assert document.idea_bank.stored_draft_tab_ids == []
    assert document.active_scene_id is None
    assert document.metadata.created_at == document.metadata.updated_at
    assert document.metadata.created_at > 0
    assert not path.exists()


def test_save_then_load_round_trip(tmp_path):
    store = ProjectStore(project_dir=tmp_path)
    path = tmp_path / "project.json"
    document = build_document()

    store.save(path, document)
    loaded = store.load_or_default(path)

    assert loaded == document


def test_save_does_not_modify_document(tmp_path):
    document = build_document()
    before = document.to_dict()

    ProjectStore(project_dir=tmp_path).save(tmp_path / "project.json", document)

    assert document.to_dict() == before


def test_saved_file_uses_wire_field_names(tmp_path):
    path = tmp_path / "project.json"
    ProjectStore(project_dir=tmp_path).save(path, build_document())

    data = json.loads(path.read_text(encoding='utf-8'))

    assert set(['version', 'metadata', 'scenes', 'draft_tabs', 'stars', 'characters',
                'plan_steps', 'idea_bank', 'active_scene_id']) <= set(data)
    assert data['idea_bank'] == {'stored_draft_tab_ids': ['tab-2']}
    assert data['stars']['star-1']['tags']['scope'] == 'Backstory'
    assert data['stars']['star-1']['tags']['status'] == 'Deferred'
    assert data['draft_tabs']['tab-1']['timeline'][1]['dialogue'] == 'Wait!'
    assert list(data['characters']['char-1']['fields']) == ['age', 'goal']


def test_unknown_top_level_fields_are_ignored(tmp_path):
    path = tmp_path / "project.json"
    data = build_document().to_dict()
    data['future_feature'] = {'anything': [1, 2, 3]}
    write_json(path, data)

    loaded = ProjectStore(project_dir=tmp_path).load_or_default(path)

    assert loaded == build_document()


def test_load_without_workbench(tmp_path):
    path = tmp_path / "project.json"
    data = build_document().to_dict()
    del data['workbench']
    write_json(path, data)

    loaded = ProjectStore(project_dir=tmp_path).load_or_default(path)

    assert loaded.workbench.unassigned_draft_tab_ids == []


def test_invalid_json_is_load_error(tmp_path):
    path = tmp_path / "project.json"
    path.write_text("{not json", encoding='utf-8')

    with pytest.raises(LoadError) as exc_info:
        ProjectStore(project_dir=tmp_path).load_or_default(path)

    assert exc_info.value.path == path


def test_missing_required_field_is_load_error(tmp_path):
    path = tmp_path / "project.json"
    data = build_document().to_dict()
    del data['metadata']
    write_json(path, data)

    with pytest.raises(LoadError) as exc_info:
        ProjectStore(project_dir=tmp_path).load_or_default(path)

    assert exc_info.value.path == path
    assert 'metadata' in str(exc_info.value)


def test_wrong_shape_is_load_error(tmp_path):
    path = tmp_path / "project.json"
    write_json(path, [1, 2, 3])

    with pytest.raises(LoadError):
        ProjectStore(project_dir=tmp_path).load_or_default(path)


def test_invalid_enum_value_is_load_error(tmp_path):
    path = tmp_path / "project.json"
    data = build_document().to_dict()
    data['stars']['star-1']['tags']['status'] = 'Forgotten'
    write_json(path, data)

    with pytest.raises(LoadError):
        ProjectStore(project_dir=tmp_path).load_or_default(path)


def test_dangling_references_are_dropped_on_load(tmp_path):
    path = tmp_path / "project.json"
    data = build_document().to_dict()
    data['scenes']['scene-1']['draft_tab_ids'].append('ghost-tab')
    data['idea_bank']['stored_draft_tab_ids'].append('ghost-tab')
    data['stars']['star-1']['origin_draft_tab_id'] = 'ghost-tab'
    data['stars']['star-1']['tags']['characters'].append('ghost-char')
    data['plan_steps']['step-1']['linked_stars'].append('ghost-star')
    data['draft_tabs']['tab-1']['fulfilled_plan_steps'].append('ghost-step')
    data['active_scene_id'] = 'ghost-scene'
    write_json(path, data)

    loaded = ProjectStore(project_dir=tmp_path).load_or_default(path)

    assert loaded.scenes['scene-1'].draft_tab_ids == ['tab-1']
    assert loaded.idea_bank.stored_draft_tab_ids == ['tab-2']
    assert loaded.stars['star-1'].origin_draft_tab_id is None
    assert loaded.stars['star-1'].tags.characters == ['char-1']
    assert loaded.plan_steps['step-1'].linked_stars == ['star-1']
    assert loaded.draft_tabs['tab-1'].fulfilled_plan_steps == ['step-1']
    assert loaded.active_scene_id is None


def test_repair_leaves_consistent_document_alone():
    document = build_document()

    assert repair_references(document) == 0
    assert document == build_document()


def test_save_to_missing_directory_is_save_error(tmp_path):
    path = tmp_path / "missing" / "project.json"

    with pytest.raises(SaveError) as exc_info:
        ProjectStore(project_dir=tmp_path).save(path, build_document())

    assert exc_info.value.path == path
    assert isinstance(exc_info.value.cause, OSError)


def test_failed_save_keeps_previous_file(tmp_path, monkeypatch):
    store = ProjectStore(project_dir=tmp_path)
    path = tmp_path / "project.json"
    original = build_document()
    store.save(path, original)
    saved_text = path.read_text(encoding='utf-8')

    def failing_replace(src, dst):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(store_module.os, 'replace', failing_replace)

    changed = build_document()
    changed.metadata.title = "Changed"
    with pytest.raises(SaveError):
        store.save(path, changed)

    assert path.read_text(encoding='utf-8') == saved_text
    assert [p.name for p in tmp_path.iterdir()] == ["project.json"]
    monkeypatch.undo()
    assert store.load_or_default(path) == original


def test_resolve_target_path_default_creates_directory(tmp_path):
    project_dir = tmp_path / "Documents" / "SpicaWriter"
    store = ProjectStore(project_dir=project_dir)

    path = store.resolve_target_path()

    assert path == project_dir / "last_project.json"
    assert project_dir.is_dir()


def test_resolve_target_path_explicit_choice(tmp_path):
    store = ProjectStore(project_dir=tmp_path / "default")
    chosen = tmp_path / "elsewhere" / "mine.json"

    assert store.resolve_target_path(chosen) == chosen
    assert store.resolve_target_path(str(chosen)) == chosen


def test_star_source_event_survives_load_and_save(tmp_path):
    store = ProjectStore(project_dir=tmp_path)
    path = tmp_path / "project.json"
    write_json(path, build_document().to_dict())

    store.save(path, store.load_or_default(path))
    data = json.loads(path.read_text(encoding='utf-8'))

    assert data['stars']['star-1']['source_event'] == {
        'tab_id': 'tab-1', 'event_id': 'ev-2', 'event_text': 'Ben calls out'
    }


@pytest.mark.parametrize("mutate", [
    lambda data: data['scenes']['scene-1'].update(draft_tab_ids=[{"bad": 1}]),
    lambda data: data['idea_bank'].update(stored_draft_tab_ids=[["tab-2"]]),
    lambda data: data['stars']['star-1'].update(origin_draft_tab_id={"id": "tab-1"}),
    lambda data: data.update(active_scene_id=["scene-1"]),
])
def test_non_string_reference_is_load_error(tmp_path, mutate):
    path = tmp_path / "project.json"
    data = build_document().to_dict()
    mutate(data)
    write_json(path, data)

    with pytest.raises(LoadError) as exc_info:
        ProjectStore(project_dir=tmp_path).load_or_default(path)

    assert exc_info.value.path == path


def test_unencodable_text_is_save_error(tmp_path):
    path = tmp_path / "project.json"
    path.write_text('{"not": "touched"}', encoding='utf-8')
    document = build_document()
    document.metadata.title = "Fog \ud800"

    with pytest.raises(SaveError) as exc_info:
        ProjectStore(project_dir=tmp_path).save(path, document)

    assert exc_info.value.path == path
    assert isinstance(exc_info.value.cause, UnicodeEncodeError)
    assert path.read_text(encoding='utf-8') == '{"not": "touched"}'
    assert [p.name for p in tmp_path.iterdir()] == ["project.json"]


@pytest.mark.skipif(os.name != 'posix', reason="POSIX permission bits")
def test_save_keeps_existing_file_mode(tmp_path):
    store = ProjectStore(project_dir=tmp_path)
    path = tmp_path / "project.json"
    store.save(path, build_document())
    os.chmod(path, 0o644)

    store.save(path, build_document())

    assert stat.S_IMODE(os.stat(path).st_mode) == 0o644


@pytest.mark.skipif(os.name != 'posix', reason="POSIX permission bits")
def test_new_file_mode_follows_umask(tmp_path):
    path = tmp_path / "project.json"
    old_umask = os.umask(0o022)
    try:
        ProjectStore(project_dir=tmp_path).save(path, build_document())
    finally:
        os.umask(old_umask)

    assert stat.S_IMODE(os.stat(path).st_mode) == 0o644


@pytest.mark.skipif(os.name != 'posix' or os.geteuid() == 0,
                    reason="needs POSIX permissions enforced for a non-root user")
def test_save_to_read_only_directory_is_save_error(tmp_path):
    locked = tmp_path / "locked"
    locked.mkdir()
    path = locked / "project.json"
    os.chmod(locked, 0o500)
    try:
        with pytest.raises(SaveError) as exc_info:
            ProjectStore(project_dir=tmp_path).save(path, build_document())
    finally:
        os.chmod(locked, 0o700)

    assert exc_info.value.path == path
    assert isinstance(exc_info.value.cause, PermissionError)
    assert list(locked.iterdir()) == []
