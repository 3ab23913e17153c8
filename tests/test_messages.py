import pytest

from messages import (
    KIND_COOLDOWN_STARTED,
    KIND_ON_COOLDOWN,
    Lang,
    LogNotifier,
    MessageCatalog,
    RecordingNotifier,
    format_duration,
)


class TestFormatDuration:
    """Test player-facing duration rendering."""

    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (3600, "1h 0m"),
            (5400, "1h 30m"),
            (7325, "2h 2m"),
            (1800, "30m 0s"),
            (65, "1m 5s"),
            (59.2, "1m 0s"),
            (0, "0m 0s"),
            (-3, "0m 0s"),
        ],
    )
    def test_format(self, seconds, expected):
        assert format_duration(seconds) == expected


class TestMessageCatalog:

    def test_default_english(self):
        catalog = MessageCatalog()
        assert catalog.get_message(Lang.NOTICE_ON_COOLDOWN, "5m 0s") == (
            "You must wait 5m 0s before engaging another Bradley."
        )

    def test_render_kind(self):
        catalog = MessageCatalog()
        message = catalog.render(KIND_COOLDOWN_STARTED, 3600)
        assert message == (
            "You and your allies are restricted from attacking another Bradley "
            "for the next 1h 0m."
        )

    def test_override_language(self):
        catalog = MessageCatalog(
            overrides={"de": {Lang.NOTICE_ON_COOLDOWN: "Warte {0}."}},
            language="de",
        )
        assert catalog.render(KIND_ON_COOLDOWN, 65) == "Warte 1m 5s."

    def test_falls_back_to_english(self):
        catalog = MessageCatalog(overrides={"de": {}}, language="de")
        assert catalog.render(KIND_ON_COOLDOWN, 65).startswith("You must wait 1m 5s")

    def test_unknown_key(self):
        assert MessageCatalog().get_message("Notice.Missing") == ""

    def test_unknown_kind(self):
        with pytest.raises(KeyError):
            MessageCatalog().render("nope", 10)

    @pytest.mark.parametrize("template", ["Wait {time}", "Wait {1}", "Wait {0"])
    def test_unformattable_override_falls_back_to_english(self, template):
        catalog = MessageCatalog(overrides={"en": {Lang.NOTICE_ON_COOLDOWN: template}})
        assert catalog.render(KIND_ON_COOLDOWN, 65) == (
            "You must wait 1m 5s before engaging another Bradley."
        )

    def test_bad_override_ignored(self):
        catalog = MessageCatalog(overrides={"fr": "not a mapping"}, language="fr")
        assert catalog.render(KIND_ON_COOLDOWN, 1).startswith("You must wait")


class TestNotifiers:

    def test_log_notifier_returns_message(self):
        message = LogNotifier().notify(1, KIND_ON_COOLDOWN, 90)
        assert message == "You must wait 1m 30s before engaging another Bradley."

    def test_blank_message_not_sent(self):
        catalog = MessageCatalog(overrides={"en": {Lang.NOTICE_ON_COOLDOWN: "   "}})
        notifier = RecordingNotifier(catalog)

        assert notifier.notify(1, KIND_ON_COOLDOWN, 90) is None
        assert notifier.history() == []

    def test_recording_notifier_history(self):
        notifier = RecordingNotifier()
        notifier.notify(1, KIND_COOLDOWN_STARTED, 3600)
        notifier.notify(2, KIND_ON_COOLDOWN, 60)

        assert len(notifier.history()) == 2
        [only] = notifier.history(actor_id=2)
        assert only.kind == KIND_ON_COOLDOWN
        assert only.duration_seconds == 60

    def test_recording_notifier_bounded(self):
        notifier = RecordingNotifier(max_history=3)
        for actor_id in range(5):
            notifier.notify(actor_id, KIND_ON_COOLDOWN, 10)

        assert [n.actor_id for n in notifier.history()] == [2, 3, 4]
