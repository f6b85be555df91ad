"""Deployment stages: install, open and close a package on the target."""

from ntkit.stages.base import Stage, StageResult


class InstallStage(Stage):
    """Remove any installed copy of the package, then install the new one."""

    name = "install"

    def validate(self) -> None:
        descriptor = self.require_descriptor()
        if descriptor.output_path is None:
            raise ValueError("Package has no output path")

    def execute(self) -> StageResult:
        descriptor = self.context.descriptor
        self.sink.write_line("Installing...")
        self.context.deployer.install(descriptor)
        return StageResult(
            stage_name=self.name,
            success=True,
            metadata={"symbol": descriptor.symbol, "path": str(descriptor.output_path)},
        )


class OpenStage(Stage):
    """Open the package's application on the target."""

    name = "open"

    def validate(self) -> None:
        self.require_descriptor()

    def execute(self) -> StageResult:
        descriptor = self.context.descriptor
        self.sink.write_line("Run...")
        self.context.deployer.open(descriptor)
        return StageResult(stage_name=self.name, success=True, metadata={"symbol": descriptor.symbol})


class CloseStage(Stage):
    """Close the package's application if it is running."""

    name = "close"

    def validate(self) -> None:
        self.require_descriptor()

    def execute(self) -> StageResult:
        descriptor = self.context.descriptor
        self.sink.write_line("Stop...")
        self.context.deployer.close(descriptor)
        return StageResult(stage_name=self.name, success=True, metadata={"symbol": descriptor.symbol})
