"""Build stage: assemble, compile, validate and write the package."""

from ntkit.assembler import SourceAssembler
from ntkit.emitter import PackageEmitter, resolve_output_path
from ntkit.errors import AssemblyError
from ntkit.extractor import extract_descriptor
from ntkit.interpreter.invoker import VMInvoker, host_extensions
from ntkit.sandbox import ExecutionSandbox
from ntkit.stages.base import Stage, StageResult
from ntkit.utils import get_file_checksum
from ntkit.values import to_python


class BuildStage(Stage):
    """
    Compile the current script into a package.

    The program runs inside the sandbox; extraction and the writePkg
    message run afterwards in the same interpreter session. A failed
    program still gets a validation pass, since it may have defined the
    package before failing.
    """

    name = "build"

    def validate(self) -> None:
        script = self.context.script
        if script is None:
            raise AssemblyError("No script to build")
        if script.has_file() and not script.is_dirty() and not script.file_path().exists():
            raise AssemblyError(f"Script file not found: {script.file_path()}")

    def execute(self) -> StageResult:
        config = self.context.config
        script = self.context.script
        self.context.descriptor = None

        output_path = resolve_output_path(script, config.scratch_dir)
        if script.has_file():
            self.sink.write_line("Compiling file...")
        else:
            self.sink.write_line("Compiling inline...")

        unit = SourceAssembler(config.build.prelude_dir).assemble(script, output_path)

        sandbox = ExecutionSandbox(script, change_directory=config.build.change_directory)
        session = self.context.session_factory(config.interpreter)
        invoker = VMInvoker(
            session,
            self.sink,
            args=config.interpreter.args,
            extensions=host_extensions(sandbox.base_dir),
        )

        with invoker as vm:
            with sandbox as base_dir:
                executed = vm.submit(unit, base_dir)

            root = vm.root()
            self.logger.debug(
                "Result graph after execution",
                extra={"stage": self.name, "event": "result_graph", "metadata": {"root": to_python(root)}},
            )
            descriptor = extract_descriptor(root, output_path, self.sink)
            if descriptor is None:
                return StageResult(
                    stage_name=self.name,
                    success=False,
                    error_message="package validation failed",
                    metadata={"executed": executed},
                )

            written = PackageEmitter().emit(vm, descriptor)

        self.context.descriptor = descriptor
        output_files = []
        checksum = None
        if descriptor.output_path and descriptor.output_path.exists():
            output_files.append(descriptor.output_path)
            checksum = get_file_checksum(descriptor.output_path)

        return StageResult(
            stage_name=self.name,
            success=True,
            output_files=output_files,
            metadata={
                "executed": executed,
                "written": written,
                "package": descriptor.to_dict(),
                "checksum": checksum,
            },
        )
