"""Human-friendly ``adjective-colour-animal`` chat identifiers."""

from __future__ import annotations

import logging
import random

from chat_thyme.memory.sql.repositories import ChatMessagesRepo

logger = logging.getLogger(__name__)

ADJECTIVES = (
    "able", "agile", "amber", "ancient", "bold", "brave", "breezy", "bright", "calm", "clever",
    "cosmic", "cozy", "crisp", "curious", "daring", "dizzy", "eager", "early", "fancy", "fierce",
    "fluffy", "gentle", "giddy", "glad", "grand", "happy", "hasty", "hidden", "humble", "icy",
    "jolly", "keen", "kind", "lazy", "lively", "lucky", "mellow", "mighty", "misty", "modest",
    "noble", "odd", "patient", "plucky", "polite", "proud", "quick", "quiet", "rapid", "rusty",
    "shiny", "shy", "silent", "sleepy", "sly", "sunny", "swift", "tidy", "tiny", "vivid",
    "wandering", "warm", "wise", "witty", "young", "zany", "zealous",
)

COLORS = (
    "amaranth", "aqua", "azure", "beige", "black", "blue", "bronze", "brown", "chocolate", "coffee",
    "copper", "coral", "crimson", "cyan", "emerald", "fuchsia", "gold", "gray", "green", "indigo",
    "ivory", "jade", "lavender", "lime", "magenta", "maroon", "olive", "orange", "peach", "pink",
    "plum", "purple", "red", "rose", "ruby", "salmon", "sapphire", "scarlet", "silver", "tan",
    "teal", "turquoise", "violet", "white", "yellow",
)

ANIMALS = (
    "albatross", "alpaca", "badger", "bat", "bear", "beaver", "bison", "camel", "cat", "cheetah",
    "crane", "crow", "deer", "dingo", "dolphin", "eagle", "eel", "falcon", "ferret", "finch",
    "fox", "frog", "gazelle", "gecko", "goat", "gopher", "hare", "hawk", "heron", "hyena",
    "ibis", "jackal", "jaguar", "koala", "lemur", "leopard", "lion", "llama", "lynx", "marmot",
    "mole", "moose", "newt", "ocelot", "otter", "owl", "panda", "parrot", "pelican", "penguin",
    "puffin", "quail", "rabbit", "raven", "salamander", "seal", "shark", "sloth", "sparrow", "swan",
    "tapir", "tiger", "toucan", "turtle", "vole", "walrus", "weasel", "whale", "wolf", "wombat",
    "yak", "zebra",
)


def generate_chat_id(rng: random.Random | None = None) -> str:
    rng = rng or random.SystemRandom()
    return "-".join((rng.choice(ADJECTIVES), rng.choice(COLORS), rng.choice(ANIMALS)))


async def generate_unique_chat_id(repo: ChatMessagesRepo, *, rng: random.Random | None = None) -> str:
    """Return a chat id with no stored messages in ``repo``."""
    while True:
        chat_id = generate_chat_id(rng)
        if not await repo.chat_exists(chat_id):
            return chat_id
        logger.debug("Chat id %s already taken; generating another", chat_id)


__all__ = ["generate_chat_id", "generate_unique_chat_id"]
