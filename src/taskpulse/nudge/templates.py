# src/taskpulse/nudge/templates.py

"""
Pre-written nudge messages, per locale and per tone.

Tones escalate with the nudge level: informative at level 1 through urgent at
level 5. Every pool holds several variants so repeated sends at the same level
do not read identically.
"""

from __future__ import annotations

DEFAULT_LOCALE = "en"

NUDGE_TEMPLATES: dict[str, dict[str, list[str]]] = {
    "en": {
        "informative": [
            "Hi! A few things on your list are coming up soon. Want to go through priorities together and plan the next steps?",
            "Hello! It's been a day since we last talked. Shall we review what's ahead and set up a plan for it?",
            "Hi there! I put together what's coming up next. Want a short overview and a checklist for it?",
        ],
        "casual": [
            "Hey! Got a minute to look at what's coming up?",
            "Hi! A couple of things are waiting for you. Quick look?",
            "Hey, how's it going? Want a short rundown of your plans?",
        ],
        "playful": [
            "Psst... your schedule misses you. Quick check-in? 😊",
            "Knock knock! Just me, with your plans in hand. 🗓️",
            "Still there? I saved you a spot on the to-do list. 😉",
        ],
        "teasing": [
            "Okay, you're busy, I get it... but your plans are piling up. Two minutes? 🙏",
            "I've been talking to myself for days now. Your tasks say hi! 👋",
            "Not to be dramatic, but your to-do list is starting to grow legs. 🐛",
        ],
        "urgent": [
            "Plans. Waiting. Check in? ⏰",
            "Still alive? 😱 Your tasks need you.",
            "...hello? SOS from your to-do list. 🆘",
        ],
    },
    "fi": {
        "informative": [
            "Hei! Listallasi on pian tulossa muutama asia. Käydäänkö prioriteetit läpi ja suunnitellaan seuraavat askeleet?",
            "Moi! Edellisestä jutustelusta on kulunut päivä. Katsotaanko yhdessä mitä on edessä?",
            "Hei! Kokosin tulevat asiat yhteen. Haluatko lyhyen katsauksen ja muistilistan?",
        ],
        "casual": [
            "Moi! Ehditkö vilkaista mitä on tulossa?",
            "Hei! Pari juttua odottaa sinua. Pikakatsaus?",
            "Moikka, mitä kuuluu? Haluatko lyhyen yhteenvedon suunnitelmistasi?",
        ],
        "playful": [
            "Psst... kalenterisi kaipaa sinua. Pikainen tsekkaus? 😊",
            "Kop kop! Täällä vain minä, suunnitelmasi mukanani. 🗓️",
            "Vieläkö siellä? Varasin sinulle paikan tehtävälistalta. 😉",
        ],
        "teasing": [
            "Okei, olet kiireinen, ymmärrän... mutta suunnitelmat kasautuvat. Kaksi minuuttia? 🙏",
            "Olen puhunut itsekseni jo päiviä. Tehtäväsi lähettävät terveisiä! 👋",
            "Ei draamaa, mutta tehtävälistallesi alkaa kasvaa jalat. 🐛",
        ],
        "urgent": [
            "Suunnitelmat. Odottavat. Tsekkaus? ⏰",
            "Oletko vielä elossa? 😱 Tehtäväsi tarvitsevat sinua.",
            "...haloo? Hätäviesti tehtävälistaltasi. 🆘",
        ],
    },
}


def supported_locales() -> list[str]:
    return sorted(NUDGE_TEMPLATES)


def normalize_locale(locale: str | None) -> str:
    """Map 'fi-FI', 'FI', None, ... onto a locale we have templates for."""
    if not locale:
        return DEFAULT_LOCALE
    base = locale.strip().lower().replace("_", "-").split("-", 1)[0]
    return base if base in NUDGE_TEMPLATES else DEFAULT_LOCALE
