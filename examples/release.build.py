"""Release build script for a PowerShell module package.

Run with:
    taskweave -f examples/release.build.py --list
    taskweave -f examples/release.build.py Release -p Version=5.10.1 -p Push=true

External tools (converter, help compiler, git, nuget) are resolved from the
PATH and may be overridden through parameters, e.g. -p Converter=pandoc.
"""

import shutil
from pathlib import Path

from taskweave.artifacts import (
    assert_file_count,
    compare_with_golden,
    normalize_log,
    render_manifest,
    stage_files,
)

MODULE_NAME = "InvokeBuild"
MODULE_FILES = [
    "Invoke-Build.ps1",
    "InvokeBuild.psd1",
    "InvokeBuild.psm1",
    "Build-Checkpoint.ps1",
    "Build-Parallel.ps1",
    "Resolve-MSBuild.ps1",
    "Show-TaskHelp.ps1",
]

NUSPEC_TEMPLATE = """<?xml version="1.0"?>
<package xmlns="http://schemas.microsoft.com/packaging/2010/07/nuspec.xsd">
\t<metadata>
\t\t<id>{{ name }}</id>
\t\t<version>{{ version }}</version>
\t\t<authors>{{ authors }}</authors>
\t\t<projectUrl>{{ project_url }}</projectUrl>
\t\t<description>{{ description }}</description>
\t\t<tags>PowerShell Build Automation</tags>
\t</metadata>
</package>
"""


def _root(ctx) -> Path:
    return Path(ctx.params.get("BuildRoot", Path(__file__).parent))


def register_tasks(build):
    @build.task("Clean")
    def clean(ctx):
        """Remove temporary build output."""
        for name in ("z", "README.htm", f"{MODULE_NAME}.nuspec"):
            path = _root(ctx) / name
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()

    @build.task("Version")
    def version(ctx):
        """Resolve the release version into the build state."""
        value = ctx.params.get("Version") or (_root(ctx) / "VERSION").read_text().strip()
        ctx.check(value.count(".") == 2, f"Version must be MAJOR.MINOR.PATCH, got {value!r}")
        ctx.state["version"] = value

    @build.task("Markdown", guard=lambda ctx: (_root(ctx) / "README.md").exists())
    def markdown(ctx):
        """Convert README.md to HTML."""
        ctx.run(
            ctx.params.get("Converter", "pandoc"),
            ["README.md", "--output=README.htm", "--standalone"],
            cwd=_root(ctx),
        )

    @build.task("Help", guard=lambda ctx: (_root(ctx) / "Help.ps1").exists())
    def help_(ctx):
        """Build the help file from its script source."""
        ctx.run(ctx.params.get("HelpCompiler", "helps"), ["Help.ps1"], cwd=_root(ctx))

    @build.task("Module", depends_on=["Version", "Markdown", "Help"])
    def module(ctx):
        """Assemble the module directory z/tools."""
        staging = _root(ctx) / "z" / "tools"
        ctx.step(lambda: stage_files(_root(ctx), staging, MODULE_FILES), name="copy")
        ctx.step(lambda: assert_file_count(staging, len(MODULE_FILES)), name="count")

    @build.task("NuSpec", depends_on=["Version"])
    def nuspec(ctx):
        """Render the package manifest with the resolved version."""
        text = render_manifest(
            NUSPEC_TEMPLATE,
            ctx.state["version"],
            name=MODULE_NAME,
            authors="Roman Kuzmin",
            project_url="https://github.com/nightroman/Invoke-Build",
            description="Build and test automation in PowerShell",
        )
        (_root(ctx) / f"{MODULE_NAME}.nuspec").write_text(text)

    @build.task("Package", depends_on=["Module", "NuSpec"], requires=["Module"])
    def package(ctx):
        """Create the NuGet package."""
        ctx.run(ctx.params.get("NuGet", "nuget"), ["pack", f"{MODULE_NAME}.nuspec", "-NoPackageAnalysis"], cwd=_root(ctx))

    @build.task("Test")
    def test(ctx):
        """Run the test harness and compare its log with the golden sample."""
        root = _root(ctx)
        result = ctx.run(ctx.params.get("PowerShell", "pwsh"), ["-NoProfile", "-File", "Tests/Test.ps1"], cwd=root)
        log = root / "z" / "Invoke-Build-Test.log"
        log.parent.mkdir(parents=True, exist_ok=True)
        log.write_text(normalize_log(result.stdout))
        if ctx.params.get("NoTestDiff"):
            ctx.warn("Test output comparison skipped")
            return
        compare_with_golden(log, root / "Tests" / "Invoke-Build-Test.log")

    @build.task("PushRelease", depends_on=["Version"], guard=lambda ctx: bool(ctx.params.get("Push")))
    def push_release(ctx):
        """Push commits and tag the release."""
        git = ctx.params.get("Git", "git")
        status = ctx.run(git, ["status", "--short"], cwd=_root(ctx))
        ctx.check(not status.stdout.strip(), "Working tree is not clean")
        ctx.run(git, ["push"], cwd=_root(ctx))
        ctx.run(git, ["tag", "-a", f"v{ctx.state['version']}", "-m", f"v{ctx.state['version']}"], cwd=_root(ctx))
        ctx.run(git, ["push", "origin", f"v{ctx.state['version']}"], cwd=_root(ctx))

    @build.task("PushNuGet", depends_on=["Package"], guard=lambda ctx: bool(ctx.params.get("Push")))
    def push_nuget(ctx):
        """Publish the package to the registry."""
        package_file = f"{MODULE_NAME}.{ctx.state['version']}.nupkg"
        ctx.run(ctx.params.get("NuGet", "nuget"), ["push", package_file, "-Source", "nuget.org"], cwd=_root(ctx))

    build.register(
        "Release",
        depends_on=["Test", "Package", "PushRelease", "PushNuGet", "Clean"],
        synopsis="Test, package and publish a release.",
    )
    build.register("default", depends_on=["Module", "Test", "Clean"], synopsis="Build and test.")
