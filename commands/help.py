# commands/help.py

HELP_TEXT = (
    "**📖 Babble Commands**\n"
    "/enable — (Admin) Learn from and talk in this channel\n"
    "/disable — (Admin) Stop learning/talking here (data kept)\n"
    "/forget — (Admin) Stop and delete this channel's brain\n"
    "/interval — (Admin) Reply every N messages here (0 = global)\n"
    "/globalinterval — (Admin) Default reply interval for every channel\n"
    "/globalbrain — (Admin) Draw replies from every channel's brain\n"
    "/blacklist — (Admin) Add, remove, list or clear blacklisted words/phrases\n"
    "/ignore, /unignore — (Admin) Ignore a user's messages\n"
    "/ignored — (Admin) List ignored users\n"
    "/brains — List all brains\n"
    "/brainstats — Stats for this channel's brain\n"
    "/countdown — Messages until my next reply\n"
    "/transitions — Browse learned transitions (search, page)\n"
    "/settransition, /deltransition — (Admin) Edit one transition\n"
    "/clean, /cleanall — (Admin) Purge blacklisted words from brains\n"
    "/cleanascii — (Admin) Purge loop and non-ASCII transitions\n"
    "/erase — (Admin) Wipe this channel's brain\n"
    "/optimize — (Admin) Compact every brain file\n"
    "/dbstats — Database totals"
)
