"""Random ``adjective-noun`` workspace names."""

import random
from pathlib import Path

ADJECTIVES = (
    "amber", "bold", "calm", "dark", "eager", "fair", "glad", "hazy", "icy", "jade",
    "keen", "lush", "mild", "neat", "opal", "pale", "quick", "rosy", "soft", "tidy",
    "vast", "warm", "zany", "aqua", "blue", "crisp", "dusty", "ember", "fresh", "gold",
    "happy", "ivory", "jolly", "kind", "lazy", "merry", "noble", "olive", "plum", "quiet",
    "rapid", "sage", "tall", "ultra", "vivid", "wise", "young", "zen", "agile", "brave",
)

NOUNS = (
    "ant", "bat", "cat", "dog", "elk", "fox", "gnu", "hawk", "ibis", "jay",
    "koi", "lynx", "mole", "newt", "owl", "puma", "quail", "ram", "seal", "toad",
    "vole", "wolf", "yak", "crab", "dart", "eel", "frog", "goat", "hare", "inca",
    "koala", "lamb", "mink", "narwhal", "orca", "panda", "raven", "swan", "tiger", "urchin",
    "viper", "wren", "zebra", "bear", "crow", "dove", "egret", "finch", "gull", "heron",
)

MAX_ATTEMPTS = 100


def generate_name(rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    return f"{rng.choice(ADJECTIVES)}-{rng.choice(NOUNS)}"


def generate_unique(directory: Path, rng: random.Random | None = None) -> str:
    """Pick a name with no existing entry in ``directory``.

    After ``MAX_ATTEMPTS`` collisions a numeric suffix is appended instead
    of retrying forever.
    """
    rng = rng or random.Random()
    for _ in range(MAX_ATTEMPTS):
        name = generate_name(rng)
        if not (directory / name).exists():
            return name
    base = generate_name(rng)
    counter = 2
    while (directory / f"{base}-{counter}").exists():
        counter += 1
    return f"{base}-{counter}"
