import json

import pytest

from swrcache import Manifest, ManifestError


def test_manifest_keeps_order_and_drops_duplicates():
    manifest = Manifest(["/", "/index.html", "/", "/static/favicon.ico", "/index.html"])

    assert manifest.paths == ("/", "/index.html", "/static/favicon.ico")
    assert len(manifest) == 3
    assert "/index.html" in manifest
    assert "/missing.html" not in manifest


@pytest.mark.parametrize("path", ["index.html", "", "https://example.com/", 42])
def test_manifest_rejects_relative_paths(path):
    with pytest.raises(ManifestError):
        Manifest(["/", path])


def test_manifest_resolve():
    manifest = Manifest(["/", "/boids/index.js"])

    assert manifest.resolve("https://rupertmckay.com") == [
        "https://rupertmckay.com/",
        "https://rupertmckay.com/boids/index.js",
    ]
    assert manifest.resolve("https://rupertmckay.com/blog/") == [
        "https://rupertmckay.com/",
        "https://rupertmckay.com/boids/index.js",
    ]


def test_manifest_from_json_list(tmp_path):
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps(["/", "/index.html"]))

    assert Manifest.from_file(path) == Manifest(["/", "/index.html"])


def test_manifest_from_json_mapping(tmp_path):
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps({"version": "v2", "paths": ["/", "/index.html"]}))

    assert Manifest.from_file(path).paths == ("/", "/index.html")


def test_manifest_from_yaml(tmp_path):
    path = tmp_path / "manifest.yaml"
    path.write_text("paths:\n  - /\n  - /boids/\n  - /boids/index.js\n")

    assert Manifest.from_file(str(path)).paths == ("/", "/boids/", "/boids/index.js")


@pytest.mark.parametrize(
    "filename, content",
    [
        ("manifest.json", "{not json"),
        ("manifest.json", '{"files": ["/"]}'),
        ("manifest.json", '"/index.html"'),
        ("manifest.yml", "paths: [unclosed"),
    ],
)
def test_manifest_from_invalid_file(tmp_path, filename, content):
    path = tmp_path / filename
    path.write_text(content)

    with pytest.raises(ManifestError):
        Manifest.from_file(path)


def test_manifest_from_directory(tmp_path):
    (tmp_path / "static").mkdir()
    (tmp_path / "boids").mkdir()
    (tmp_path / "index.html").write_text("home")
    (tmp_path / "static" / "favicon.ico").write_bytes(b"\x00")
    (tmp_path / "boids" / "index.html").write_text("boids")
    (tmp_path / "boids" / "index.js").write_text("console.log(1)")
    (tmp_path / ".gitignore").write_text("*")

    manifest = Manifest.from_directory(tmp_path)

    assert manifest.paths == (
        "/boids/",
        "/boids/index.html",
        "/boids/index.js",
        "/",
        "/index.html",
        "/static/favicon.ico",
    )


def test_manifest_from_directory_with_include(tmp_path):
    (tmp_path / "boids").mkdir()
    (tmp_path / "boids" / "index.html").write_text("boids")
    (tmp_path / "boids" / "index.js").write_text("console.log(1)")
    (tmp_path / "boids" / "notes.md").write_text("# notes")

    manifest = Manifest.from_directory(tmp_path, include=["*.html", "*.js"])

    assert manifest.paths == ("/boids/", "/boids/index.html", "/boids/index.js")


def test_manifest_from_missing_directory(tmp_path):
    with pytest.raises(ManifestError):
        Manifest.from_directory(tmp_path / "_site")
