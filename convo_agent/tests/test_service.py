import pytest

from convo_agent.api import service
from convo_agent.api.service import InboundMetadata, build_user_prompt, is_user_allowed, split_message
from convo_agent.prompts import DEFAULT_PROMPT, METADATA_PROMPT, load_system_prompt


def test_build_user_prompt_guild():
    meta = InboundMetadata(
        user_name="alice",
        user_id="11",
        channel_id="22",
        channel_name="general",
        category_name="Text Channels",
        guild_name="Home",
        guild_id="33",
    )
    prompt = build_user_prompt("hello", meta)
    assert prompt == (
        "<metadata>\nGuild: Home (33)\nChannel: Text Channels > general (22)\nUser: alice (11)\n</metadata>"
        "\n\n<user_input>hello</user_input>"
    )


def test_build_user_prompt_dm():
    prompt = build_user_prompt("hi", InboundMetadata(user_name="bob", user_id="1", channel_id="5"))
    assert "Guild: DM (0)" in prompt
    assert "Channel: None > 5 (5)" in prompt


def test_split_message():
    assert split_message("") == []
    assert split_message("abc", limit=5) == ["abc"]
    assert split_message("abcdefg", limit=3) == ["abc", "def", "g"]
    chunks = split_message("é" * 4000)
    assert [len(c) for c in chunks] == [1900, 1900, 200]
    with pytest.raises(ValueError):
        split_message("x", limit=0)


def test_is_user_allowed(monkeypatch):
    assert is_user_allowed("42", allowed_user_id=42)
    assert not is_user_allowed("43", allowed_user_id=42)
    monkeypatch.setattr(service.settings, "allowed_user_id", None)
    assert is_user_allowed("anyone")


def test_load_system_prompt(tmp_path):
    assert load_system_prompt(tmp_path / "missing.txt") == DEFAULT_PROMPT
    empty = tmp_path / "empty.txt"
    empty.write_text("   \n", encoding="utf-8")
    assert load_system_prompt(empty) == DEFAULT_PROMPT
    custom = tmp_path / "custom.txt"
    custom.write_text("  Be brief.  \n", encoding="utf-8")
    assert load_system_prompt(custom) == "Be brief." + METADATA_PROMPT


def test_packaged_prompt_is_found():
    prompt = load_system_prompt("prompts/system_prompt.txt")
    assert prompt.startswith("You are a helpful assistant living in a Discord server.")
    assert prompt.endswith(METADATA_PROMPT)


@pytest.mark.asyncio
async def test_shutdown_closes_default_agent(monkeypatch):
    class FakeAgent:
        closed = False

        async def aclose(self):
            self.closed = True

    agent = FakeAgent()
    monkeypatch.setattr(service, "_agent", agent)

    await service.shutdown()

    assert agent.closed
    assert service._agent is None
    await service.shutdown()
