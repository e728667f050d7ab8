import pytest

from core.errors import InvalidConfig
from core.types import (
    ActorConfig, ConversationTurn, NodeStatus, Persona, RegistryEntry,
    normalize_cwd,
)


def test_defaults_for_fresh_identity():
    config = ActorConfig.defaults("alice")

    assert config.display_name == "node-alice"
    assert config.persona == Persona.SYSTEM
    assert config.status == NodeStatus.ONLINE
    assert config.cwd == "/"
    assert config.system_prompt
    assert config.sessions_opened == 0


def test_merged_applies_patch_without_touching_original():
    config = ActorConfig.defaults("alice")
    updated = config.merged({"persona": "coder", "displayName": "Alice"})

    assert updated.persona == Persona.CODER
    assert updated.display_name == "Alice"
    assert config.persona == Persona.SYSTEM
    assert config.display_name == "node-alice"


@pytest.mark.parametrize("patch", [
    {"persona": "wizard"},
    {"status": "asleep"},
    {"cwd": "relative/path"},
    {"displayName": ""},
    {"displayName": 42},
    {"id": "mallory"},
    {"colour": "red"},
])
def test_merged_rejects_bad_patches(patch):
    with pytest.raises(InvalidConfig):
        ActorConfig.defaults("alice").merged(patch)


def test_merged_accepts_unchanged_id():
    config = ActorConfig.defaults("alice")
    assert config.merged({"id": "alice"}).id == "alice"


def test_merged_ignores_server_managed_counters():
    config = ActorConfig.defaults("alice")
    config.commands_run = 3
    updated = config.merged({
        **config.to_dict(),
        "persona": "coder",
        "commandsRun": 99,
        "sessionsOpened": 7,
        "lastActive": 0,
    })

    assert updated.persona == Persona.CODER
    assert updated.commands_run == 3
    assert updated.sessions_opened == 0
    assert updated.last_active == config.last_active


def test_cwd_is_normalized():
    assert normalize_cwd("/a/../b/") == "/b"
    assert normalize_cwd("//x") == "/x"
    assert ActorConfig.defaults("a").merged({"cwd": "/docs/./notes"}).cwd == "/docs/notes"


def test_wire_form_uses_camel_case_and_round_trips():
    config = ActorConfig.defaults("alice").merged({"persona": "reviewer"})
    data = config.to_dict()

    assert set(data) == {
        "id", "displayName", "persona", "systemPrompt", "status", "cwd",
        "lastActive", "sessionsOpened", "commandsRun",
    }
    assert data["persona"] == "reviewer"
    assert ActorConfig.from_dict(data) == config


def test_stored_config_with_bad_persona_is_rejected():
    data = ActorConfig.defaults("alice").to_dict()
    data["persona"] = "wizard"
    with pytest.raises(InvalidConfig):
        ActorConfig.from_dict(data)


def test_registry_entry_requires_id():
    with pytest.raises(InvalidConfig):
        RegistryEntry.from_dict({"displayName": "nobody"})
    with pytest.raises(InvalidConfig):
        RegistryEntry.from_dict(["not", "an", "object"])


def test_registry_entry_defaults_display_name():
    entry = RegistryEntry.from_dict({"id": "bob"})
    assert entry.display_name == "node-bob"
    assert entry.to_dict()["persona"] == "system"


def test_conversation_turn_rejects_unknown_role():
    assert ConversationTurn.from_dict({"role": "user", "content": "hi"}).content == "hi"
    with pytest.raises(ValueError):
        ConversationTurn.from_dict({"role": "narrator", "content": "hi"})
