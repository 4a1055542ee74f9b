import json

import pytest
import yaml
from structlog.testing import capture_logs
from typer.testing import CliRunner

from fulfillment.cli.cli import app
from fulfillment.cli.commands.version import current_version
from fulfillment.cli.common.context import AppContext
from fulfillment.core.settings import Settings

runner = CliRunner()


@pytest.fixture
def appctx(helper, logger, channel, make):
    deleted = make("fulfillment.v1.Cluster", {"id": "c4", "metadata": {"name": "old"}})
    deleted.metadata.deletion_timestamp.seconds = 1704164645
    channel.add(
        make(
            "fulfillment.v1.Cluster",
            {
                "id": "c1",
                "metadata": {"name": "alpha", "labels": {"team": "a"}},
                "spec": {"template": "t1"},
                "status": {"state": "CLUSTER_STATE_READY"},
            },
        ),
        make("fulfillment.v1.Cluster", {"id": "c2", "metadata": {"name": "shared"}}),
        make("fulfillment.v1.Cluster", {"id": "c3", "metadata": {"name": "shared"}}),
        deleted,
        make("fulfillment.v1.ClusterTemplate", {"id": "t1", "metadata": {"name": "small"}}),
    )
    return AppContext(settings=Settings(), logger=logger, helper=helper)


def _invoke(appctx, *args):
    # Keep log messages out of the captured output:
    with capture_logs():
        return runner.invoke(app, list(args), obj=appctx)


def _table(output: str) -> list[list[str]]:
    return [line.split() for line in output.splitlines() if line.strip()]


def test_types(appctx):
    result = _invoke(appctx, "types")

    assert result.exit_code == 0
    for name in ("clusters", "clustertemplates", "hosts", "hostclasses"):
        assert name in result.output


def test_get_hides_deleted_objects(appctx, channel):
    result = _invoke(appctx, "get", "clusters")

    assert result.exit_code == 0, result.output
    assert _table(result.output) == [
        ["ID", "NAME", "TEMPLATE", "STATE"],
        ["c1", "alpha", "small", "READY"],
        ["c2", "shared", "-", "UNSPECIFIED"],
        ["c3", "shared", "-", "UNSPECIFIED"],
    ]
    assert "!has(this.metadata.deletion_timestamp)" in channel.requests[0].filter


def test_get_include_deleted(appctx):
    result = _invoke(appctx, "get", "clusters", "--include-deleted")

    assert result.exit_code == 0, result.output
    rows = _table(result.output)
    assert rows[0] == ["ID", "DELETED", "NAME", "TEMPLATE", "STATE"]
    assert [row[0] for row in rows[1:]] == ["c1", "c2", "c3", "c4"]


def test_get_by_name_and_filter(appctx):
    result = _invoke(appctx, "get", "cluster", "shared", "--filter", 'this.id != "c2"', "-o", "json")

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == [{"id": "c3", "metadata": {"name": "shared"}}]


def test_get_yaml(appctx):
    result = _invoke(appctx, "get", "clusters", "c1", "-o", "yaml")

    assert result.exit_code == 0, result.output
    documents = yaml.safe_load(result.output)
    assert documents[0]["spec"] == {"template": "t1"}
    assert documents[0]["status"] == {"state": "CLUSTER_STATE_READY"}


def test_get_reports_missing_refs(appctx):
    result = _invoke(appctx, "get", "clusters", "c1", "nothing")

    assert result.exit_code == 1
    assert "Can't find cluster 'nothing'" in result.output


def test_get_rejects_invalid_filter_before_calling_server(appctx, channel):
    result = _invoke(appctx, "get", "clusters", "--filter", "this.nme == 'x'")

    assert result.exit_code == 2
    assert "Invalid filter" in result.output
    assert channel.calls == []


def test_get_unknown_type(appctx):
    result = _invoke(appctx, "get", "widgets")

    assert result.exit_code == 1
    assert "Unknown object type 'widgets'" in result.output


def test_get_without_results(appctx):
    result = _invoke(appctx, "get", "hosts")

    assert result.exit_code == 0
    assert "No hosts found" in result.output


def test_delete_by_name(appctx, channel):
    result = _invoke(appctx, "delete", "clusters", "alpha")

    assert result.exit_code == 0, result.output
    assert "Deleted cluster 'c1'" in result.output
    assert "c1" not in channel.objects["fulfillment.v1.Cluster"]


def test_delete_checks_all_refs_first(appctx, channel):
    result = _invoke(appctx, "delete", "clusters", "c1", "nothing")

    assert result.exit_code == 1
    assert "There is no cluster with identifier or name 'nothing'" in result.output
    assert channel.count("Delete") == 0


def test_delete_ambiguous_name(appctx, channel):
    result = _invoke(appctx, "delete", "clusters", "shared")

    assert result.exit_code == 1
    assert "use the identifier instead" in result.output
    assert channel.count("Delete") == 0


def test_create_from_file(appctx, channel, tmp_path):
    file = tmp_path / "cluster.yaml"
    file.write_text("metadata:\n  name: delta\nspec:\n  template: t1\n")

    result = _invoke(appctx, "create", "cluster", "-f", str(file))

    assert result.exit_code == 0, result.output
    assert "Created cluster 'generated-1'" in result.output
    assert channel.objects["fulfillment.v1.Cluster"]["generated-1"].metadata.name == "delta"


def test_create_rejects_unknown_fields(appctx, channel, tmp_path):
    file = tmp_path / "cluster.yaml"
    file.write_text("metadata:\n  nam: delta\n")

    result = _invoke(appctx, "create", "cluster", "-f", str(file))

    assert result.exit_code == 2
    assert channel.count("Create") == 0


def test_label(appctx, channel):
    result = _invoke(appctx, "label", "clusters", "alpha", "env=prod", "team-")

    assert result.exit_code == 0, result.output
    labels = channel.objects["fulfillment.v1.Cluster"]["c1"].metadata.labels
    assert dict(labels) == {"env": "prod"}


def test_label_without_changes(appctx, channel):
    result = _invoke(appctx, "label", "clusters", "c1", "team=a")

    assert result.exit_code == 0
    assert "already up to date" in result.output
    assert channel.count("Update") == 0


def test_annotate_rejects_invalid_operations(appctx, channel):
    result = _invoke(appctx, "annotate", "clusters", "c1", "broken")

    assert result.exit_code == 2
    assert "Invalid annotation 'broken'" in result.output
    assert channel.calls == []


def test_annotate(appctx, channel):
    result = _invoke(appctx, "annotate", "clusters", "c1", "note=hello world")

    assert result.exit_code == 0, result.output
    annotations = channel.objects["fulfillment.v1.Cluster"]["c1"].metadata.annotations
    assert annotations["note"] == "hello world"


def test_describe_by_identifier(appctx, channel):
    result = _invoke(appctx, "describe", "cluster", "c1")

    assert result.exit_code == 0, result.output
    document = yaml.safe_load(result.output)
    assert document["id"] == "c1"
    assert document["metadata"]["labels"] == {"team": "a"}
    assert channel.count("Get") == 1
    assert channel.count("List") == 0


def test_describe_by_name(appctx, channel):
    result = _invoke(appctx, "describe", "clustertemplates", "small", "-o", "json")

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"id": "t1", "metadata": {"name": "small"}}
    assert channel.count("List") == 1


def test_describe_missing_object(appctx):
    result = _invoke(appctx, "describe", "cluster", "nothing")

    assert result.exit_code == 1
    assert "There is no cluster with identifier or name 'nothing'" in result.output


def test_describe_ambiguous_name(appctx):
    result = _invoke(appctx, "describe", "cluster", "shared")

    assert result.exit_code == 1
    assert "use the identifier instead" in result.output


def test_describe_rejects_table_output(appctx, channel):
    result = _invoke(appctx, "describe", "cluster", "c1", "-o", "table")

    assert result.exit_code == 2
    assert channel.calls == []


def test_version_doesnt_need_a_server(monkeypatch):
    def _unexpected(settings):
        raise AssertionError("the version command must not connect")

    monkeypatch.setattr("fulfillment.cli.cli.build_app_context", _unexpected)

    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0, result.output
    assert result.output.strip() == current_version()
