"""
blueprint.py

Image tag patching for deployment manifests.

The manifest is edited as text, not re-serialised, so comments, ordering and
formatting survive. Only `image:` lines for the configured base image are
touched; sidecars using other images keep their tags.
"""

import difflib
import re
from typing import Optional

from rich.console import Console
from rich.text import Text

from davit.errors import BlueprintError


def update_image_tag(content: str, base_image: str, new_tag: str) -> str:
    """Replace the tag (or digest) of every `image: <base_image>...` line with new_tag."""
    pattern = re.compile(rf"^([ \t]*-?[ \t]*image:[ \t]*[\"']?{re.escape(base_image)})[:@][^\s#\"']+", re.MULTILINE)
    if not pattern.search(content):
        raise BlueprintError(f"Could not find 'image: {base_image}' field in the YAML content")
    return pattern.sub(lambda m: f"{m.group(1)}:{new_tag}", content)


def current_tag(content: str, base_image: str) -> Optional[str]:
    """Tag currently set for base_image, if any."""
    match = re.search(
        rf"^[ \t]*-?[ \t]*image:[ \t]*[\"']?{re.escape(base_image)}:([^\s#\"'@]+)",
        content,
        re.MULTILINE,
    )
    return match.group(1) if match else None


def render_diff(
    old: str,
    new: str,
    filename: str,
    console: Optional[Console] = None,
    unified: bool = True,
    context: int = 3,
) -> bool:
    """
    Print a colored diff of old vs new. Returns False when nothing changed.

    unified=False prints every line of the file with changes marked.
    """
    console = console or Console()
    old_lines = old.splitlines(keepends=True)
    new_lines = new.splitlines(keepends=True)
    if old_lines == new_lines:
        console.print(f"[dim]No changes to {filename}[/dim]")
        return False

    console.print()
    console.print(Text.assemble(("--- ", "dim"), (filename, "bold")))
    console.print(Text.assemble(("+++ ", "dim"), (filename, "bold")))

    if unified:
        lines = list(difflib.unified_diff(old_lines, new_lines, n=context))[2:]
    else:
        lines = list(difflib.ndiff(old_lines, new_lines))
        lines = [line for line in lines if not line.startswith("? ")]

    for line in lines:
        body = line.rstrip("\n")
        if body.startswith("@@"):
            console.print(Text(body, style="cyan"))
        elif body.startswith("-"):
            console.print(Text(body, style="red"))
        elif body.startswith("+"):
            console.print(Text(body, style="green"))
        else:
            console.print(Text(body, style="dim"))
    console.print()
    return True
