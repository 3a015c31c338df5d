"""Bundle writer — lays the final artifacts out on disk with a Markdown index."""

import shutil
from pathlib import Path

from specpipe.config import get_config
from specpipe.state import Artifact


def _render_index(artifacts: list[Artifact], run_name: str) -> str:
    """Markdown index of the bundle: one row per artifact, production order."""
    lines = [f"# {run_name} — Spec IR Bundle", ""]

    if not artifacts:
        lines.append("*No artifacts were produced.*")
        return "\n".join(lines) + "\n"

    lines.append("| # | Artifact | Stage | Cycles | Review |")
    lines.append("|---|----------|-------|--------|--------|")
    for i, artifact in enumerate(artifacts, 1):
        review = "approved" if artifact.approved else "best effort"
        lines.append(
            f"| {i} | [`{artifact.file_path}`]({artifact.file_path}) | {artifact.stage} "
            f"| {artifact.cycles_used} | {review} |"
        )
    lines.append("")

    unapproved = [a for a in artifacts if not a.approved]
    if unapproved:
        lines.append("## Not Approved")
        lines.append("")
        lines.append(
            "The following artifacts used their full feedback-cycle budget without reviewer "
            "approval and contain the last generated draft:"
        )
        lines.append("")
        for artifact in unapproved:
            lines.append(f"- `{artifact.file_path}` ({artifact.cycles_used} cycles)")
        lines.append("")

    return "\n".join(lines)


def _bundle_dir(output_dir: Path, run_name: str) -> Path:
    """Find a non-conflicting directory name."""
    path = output_dir / run_name
    counter = 1
    while path.exists():
        counter += 1
        path = output_dir / f"{run_name} ({counter})"
    return path


def write_bundle(artifacts: list[Artifact], run_name: str, output_dir: str | Path | None = None,
                 zip_bundle: bool | None = None) -> Path:
    """Write every artifact plus README.md; return the bundle path (a .zip if zipping)."""
    config = get_config()
    base = Path(output_dir or config.get("output_dir", "./output"))
    if zip_bundle is None:
        zip_bundle = config.get("zip_bundle", False)

    base.mkdir(parents=True, exist_ok=True)
    bundle = _bundle_dir(base, run_name)
    bundle.mkdir(parents=True)

    for artifact in artifacts:
        target = bundle / artifact.file_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(artifact.content + "\n", encoding="utf-8")

    (bundle / "README.md").write_text(_render_index(artifacts, run_name), encoding="utf-8")

    if zip_bundle:
        archive = shutil.make_archive(str(bundle), "zip", root_dir=bundle)
        shutil.rmtree(bundle)
        return Path(archive)
    return bundle
