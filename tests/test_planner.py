from __future__ import annotations

from pathlib import Path, PurePosixPath
import tempfile
import unittest

from colb.config import EffectiveConfig
from colb.errors import BuildOutputMissingError, ConflictingModifiersError
from colb.planner import (
    DirectBuild,
    DirectTest,
    InvocationPlanner,
    OrchestratorBuild,
    OrchestratorTest,
    OrchestratorTestResult,
    PlanRequest,
    Verb,
    mixin_flags,
)
from colb.workspace import PackageRef, WorkspaceRoot


def ref(name: str) -> PackageRef:
    return PackageRef(name=name, source_dir=PurePosixPath("src") / name)


class InvocationPlannerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.ws = Path(self.temp_dir.name).resolve()
        self.root = WorkspaceRoot(path=self.ws, marker=self.ws / ".colb.toml")
        self.planner = InvocationPlanner(root=self.root, config=EffectiveConfig())
        self.deps = {"core", "utils"}

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _built(self, name: str) -> Path:
        build_dir = self.ws / "build" / name
        build_dir.mkdir(parents=True, exist_ok=True)
        return build_dir

    def test_default_build_rebuilds_dependencies_then_package(self) -> None:
        request = PlanRequest(verb=Verb.BUILD, packages=[ref("app")])
        plan = self.planner.plan(request, self.deps)

        self.assertEqual(len(plan), 2)
        dependency_step, package_step = plan.steps
        self.assertIsInstance(dependency_step, OrchestratorBuild)
        self.assertEqual(dependency_step.packages, ("core", "utils"))
        self.assertNotIn("app", dependency_step.packages)
        self.assertIsInstance(package_step, OrchestratorBuild)
        self.assertEqual(package_step.packages, ("app",))

    def test_single_never_builds_dependencies(self) -> None:
        request = PlanRequest(verb=Verb.BUILD, packages=[ref("app")], single=True)
        self.assertFalse(self.planner.wants_dependencies(request))
        plan = self.planner.plan(request, self.deps)
        self.assertEqual([step.packages for step in plan.steps], [("app",)])

    def test_recursive_always_builds_dependencies(self) -> None:
        request = PlanRequest(verb=Verb.BUILD, packages=[ref("app")], recursive=True)
        plan = self.planner.plan(request, self.deps)
        self.assertEqual(plan.steps[0].packages, ("core", "utils"))

    def test_empty_dependency_set_skips_dependency_step(self) -> None:
        request = PlanRequest(verb=Verb.BUILD, packages=[ref("utils")], recursive=True)
        plan = self.planner.plan(request, set())
        self.assertEqual(len(plan), 1)

    def test_dependency_step_never_names_primary_packages(self) -> None:
        request = PlanRequest(verb=Verb.BUILD, packages=[ref("app"), ref("core")])
        plan = self.planner.plan(request, self.deps)
        self.assertEqual(plan.steps[0].packages, ("utils",))
        self.assertEqual(plan.steps[1].packages, ("app", "core"))

    def test_primary_packages_keep_input_order(self) -> None:
        request = PlanRequest(verb=Verb.BUILD, packages=[ref("zeta"), ref("alpha")], single=True)
        plan = self.planner.plan(request)
        self.assertEqual(plan.steps[0].packages, ("zeta", "alpha"))

    def test_single_and_recursive_conflict(self) -> None:
        request = PlanRequest(verb=Verb.BUILD, packages=[ref("app")], single=True, recursive=True)
        with self.assertRaises(ConflictingModifiersError):
            self.planner.plan(request, self.deps)

    def test_build_arguments(self) -> None:
        request = PlanRequest(verb=Verb.BUILD, packages=[ref("app")])
        dependency_args, package_args = (step.args for step in self.planner.plan(request, self.deps))

        self.assertEqual(dependency_args[:4], ("--build-base", "build", "--install-base", "install"))
        self.assertIn("--parallel-workers", dependency_args)
        mixin_index = dependency_args.index("--mixin")
        self.assertEqual(dependency_args[mixin_index + 1 : mixin_index + 5], ("ccache", "ninja", "mold", "compile-commands"))
        self.assertIn("-DBUILD_TESTING=OFF", dependency_args)
        self.assertIn("summary+", dependency_args)
        self.assertIn("-DBUILD_TESTING=ON", package_args)
        self.assertIn("console_cohesion+", package_args)
        self.assertEqual(package_args[-1], "-DCMAKE_BUILD_TYPE=Debug")

    def test_configured_args_are_applied_per_pass(self) -> None:
        config = EffectiveConfig(
            dependency_build_args=("--continue-on-error",),
            package_build_args=("--cmake-force-configure",),
            cmake_args=("-DFOO=ON",),
            parallel_jobs=0,
        )
        planner = InvocationPlanner(root=self.root, config=config)
        request = PlanRequest(verb=Verb.BUILD, packages=[ref("app")], build_type="Release", skip_tests=True)
        dependency_step, package_step = planner.plan(request, self.deps).steps

        self.assertIn("--continue-on-error", dependency_step.args)
        self.assertNotIn("--cmake-force-configure", dependency_step.args)
        self.assertIn("--cmake-force-configure", package_step.args)
        self.assertNotIn("--executor", package_step.args)
        self.assertIn("-DFOO=ON", package_step.args)
        self.assertIn("-DBUILD_TESTING=OFF", package_step.args)
        self.assertEqual(package_step.args[-1], "-DCMAKE_BUILD_TYPE=Release")
        self.assertEqual(dependency_step.args[-1], "-DCMAKE_BUILD_TYPE=Debug")

    def test_mixin_flags(self) -> None:
        self.assertEqual(
            mixin_flags(EffectiveConfig()),
            ["--mixin", "ccache", "ninja", "mold", "compile-commands"],
        )
        self.assertEqual(mixin_flags(EffectiveConfig(enabled_mixins=(), extra_colcon_extensions=False)), [])
        self.assertEqual(
            mixin_flags(EffectiveConfig(enabled_mixins=("ninja",), extra_colcon_extensions=False)),
            ["--mixin", "ninja"],
        )

    def test_test_without_filter_uses_colcon(self) -> None:
        request = PlanRequest(verb=Verb.TEST, packages=[ref("app")])
        self.assertFalse(self.planner.wants_dependencies(request))
        plan = self.planner.plan(request, self.deps)

        kinds = [type(step) for step in plan.steps]
        self.assertEqual(kinds, [OrchestratorBuild, OrchestratorTest, OrchestratorTestResult])
        self.assertEqual(plan.steps[0].packages, ("app",))
        self.assertIn("--output-on-failure", plan.steps[1].args)
        self.assertEqual(plan.steps[2].result_base, "build/app")

    def test_test_recursive_builds_dependencies(self) -> None:
        request = PlanRequest(verb=Verb.TEST, packages=[ref("app")], recursive=True)
        plan = self.planner.plan(request, self.deps)
        self.assertEqual(plan.steps[0].packages, ("core", "utils"))

    def test_test_results_for_several_packages(self) -> None:
        request = PlanRequest(verb=Verb.TEST, packages=[ref("app"), ref("core")], skip_rebuild=True)
        plan = self.planner.plan(request)
        self.assertEqual([type(step) for step in plan.steps], [OrchestratorTest, OrchestratorTestResult])
        self.assertEqual(plan.steps[1].result_base, "build")

    def test_single_test_runs_directly(self) -> None:
        build_dir = self._built("my_pkg")
        request = PlanRequest(verb=Verb.TEST, packages=[ref("my_pkg")], test_filter="unit_a")
        plan = self.planner.plan(request)

        self.assertEqual(plan.of_type(OrchestratorTest), [])
        self.assertEqual(plan.of_type(OrchestratorBuild), [])
        direct_tests = plan.of_type(DirectTest)
        self.assertEqual(len(direct_tests), 1)
        self.assertEqual(direct_tests[0].working_dir, build_dir)
        self.assertEqual(direct_tests[0].test_filter, "unit_a")
        direct_build = plan.steps[0]
        self.assertIsInstance(direct_build, DirectBuild)
        self.assertEqual((direct_build.target, direct_build.tool), ("unit_a", "ninja"))

    def test_single_test_without_rebuild(self) -> None:
        self._built("my_pkg")
        request = PlanRequest(verb=Verb.TEST, packages=[ref("my_pkg")], test_filter="unit_a", skip_rebuild=True)
        plan = self.planner.plan(request)
        self.assertEqual([type(step) for step in plan.steps], [DirectTest])

    def test_single_test_with_recursive_needs_no_prior_build_output(self) -> None:
        self.assertFalse((self.ws / "build" / "app").exists())
        request = PlanRequest(verb=Verb.TEST, packages=[ref("app")], test_filter="t", recursive=True)
        plan = self.planner.plan(request, self.deps)
        kinds = [type(step) for step in plan.steps]
        self.assertEqual(kinds, [OrchestratorBuild, OrchestratorBuild, DirectBuild, DirectTest])
        self.assertEqual(plan.steps[1].packages, ("app",))
        self.assertEqual(plan.steps[3].working_dir, self.ws / "build" / "app")

    def test_direct_build_falls_back_to_cmake_without_ninja(self) -> None:
        self._built("app")
        planner = InvocationPlanner(root=self.root, config=EffectiveConfig(enabled_mixins=("ccache",)))
        request = PlanRequest(verb=Verb.TEST, packages=[ref("app")], test_filter="t")
        self.assertEqual(planner.plan(request).steps[0].tool, "cmake")

    def test_single_test_without_build_output_fails(self) -> None:
        request = PlanRequest(verb=Verb.TEST, packages=[ref("my_pkg")], test_filter="unit_a")
        with self.assertRaises(BuildOutputMissingError):
            self.planner.preflight(request)
        with self.assertRaises(BuildOutputMissingError):
            self.planner.plan(request)

    def test_single_test_requires_one_package(self) -> None:
        request = PlanRequest(verb=Verb.TEST, packages=[ref("a"), ref("b")], test_filter="t")
        with self.assertRaises(ConflictingModifiersError):
            self.planner.plan(request)

    def test_test_only_modifiers_are_rejected_for_build(self) -> None:
        for request in (
            PlanRequest(verb=Verb.BUILD, packages=[ref("a")], test_filter="t"),
            PlanRequest(verb=Verb.BUILD, packages=[ref("a")], skip_rebuild=True),
            PlanRequest(verb=Verb.TEST, packages=[ref("a")], skip_rebuild=True, recursive=True),
            PlanRequest(verb=Verb.BUILD, packages=[]),
        ):
            with self.subTest(request=request):
                with self.assertRaises(ConflictingModifiersError):
                    self.planner.validate(request)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
