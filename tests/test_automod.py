"""
tests/test_automod.py — Link Filter Decision
============================================
"""

from __future__ import annotations

from donutdemand.bot.cogs.automod import should_remove


def _check(content="check https://example.com", *, enabled=True, is_admin=False, roles=(), bypass="automod"):
    return should_remove(
        content, enabled=enabled, is_admin=is_admin, role_names=roles, bypass_role_name=bypass,
    )


class TestShouldRemove:
    def test_link_removed(self):
        assert _check()

    def test_invite_removed(self):
        assert _check("join discord.gg/abc")

    def test_disabled(self):
        assert not _check(enabled=False)

    def test_admin_exempt(self):
        assert not _check(is_admin=True)

    def test_bypass_role_case_insensitive(self):
        assert not _check(roles=["Member", "AutoMod"])

    def test_custom_bypass_role(self):
        assert not _check(roles=["Trusted"], bypass="trusted")
        assert _check(roles=["automod"], bypass="trusted")

    def test_plain_text_kept(self):
        assert not _check("hello there")
