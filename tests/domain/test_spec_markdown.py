from __future__ import annotations

from domain.services.emit_spec_markdown import emit_spec_markdown
from domain.services.parse_document import parse_document
from tests.helpers.scene_fixtures import load_scene


def test_dashboard_spec_report() -> None:
    markdown = emit_spec_markdown(load_scene("dashboard.fd"), "Dashboard")

    assert markdown == (
        "# Spec: Dashboard\n"
        "\n"
        "## @dashboard `group`\n"
        "\n"
        "> Main analytics view\n"
        "- [ ] loads within 2 seconds\n"
        "- **Status:** in_progress\n"
        "- **Priority:** high\n"
        "- **Tags:** analytics, v2\n"
        "\n"
        "### @card `rect`\n"
        "\n"
        "> Summary card\n"
        "\n"
        "---\n"
        "\n"
        "## Flows\n"
        "\n"
        "- **@dashboard** → **@badge**: drill down\n"
    )


def test_unannotated_nodes_are_skipped() -> None:
    graph = parse_document('rect @plain\ngroup @outer {\n  rect @inner {\n    spec "Deep"\n  }\n}\n')

    markdown = emit_spec_markdown(graph, "Nested")

    assert "@plain" not in markdown
    assert "## @outer `group`\n\n### @inner `rect`\n\n> Deep\n" in markdown
    assert "Flows" not in markdown


def test_edge_annotations_are_listed_under_the_flow() -> None:
    graph = parse_document(
        'rect @a\nrect @b\nedge @e {\n  spec "Hand-off"\n  from: @a\n  to: @b\n}\n'
    )

    markdown = emit_spec_markdown(graph, "Flows")

    assert markdown.endswith("- **@a** → **@b**\n  > Hand-off\n")
