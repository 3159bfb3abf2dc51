import subprocess
import sys

SOURCE_DIRS = ["src", "tests", "experiments"]
# Tests that only run with a CUDA device (and Triton for the kernel parity ones)
GPU_TESTS = ["tests/planetsim/test_kernels.py", "tests/planetsim/test_coupling.py"]
BENCHMARK = "experiments/benchmark_coupling.py"


def run_command(command: list[str]) -> None:
    print(f"$ {' '.join(command)}")
    try:
        subprocess.run(command, check=True)
    except subprocess.CalledProcessError as e:
        sys.exit(e.returncode)


def lint() -> None:
    """Run ruff check over sources, tests and experiments."""
    print("Running lint (ruff check)...")
    run_command(["ruff", "check", *SOURCE_DIRS])


def format() -> None:
    """Run ruff format --check, or rewrite files when called with --fix."""
    if "--fix" in sys.argv[1:]:
        print("Running format (ruff format)...")
        run_command(["ruff", "format", *SOURCE_DIRS])
    else:
        print("Running format check (ruff format --check)...")
        run_command(["ruff", "format", "--check", *SOURCE_DIRS])


def typecheck() -> None:
    """Run pyright on the planetsim sources."""
    print("Running typecheck (pyright)...")
    run_command(["pyright"])


def test() -> None:
    """Run pytest; GPU-only tests skip themselves without CUDA."""
    args = sys.argv[1:]
    print(f"Running tests (pytest {' '.join(args)})...")
    run_command(["pytest"] + args)


def test_gpu() -> None:
    """Run the CUDA / Triton test modules; exits non-zero without CUDA."""
    import torch

    if not torch.cuda.is_available():
        print("CUDA is not available; GPU tests would all skip.")
        sys.exit(1)
    print("Running GPU tests...")
    run_command(["pytest", "-rs", *GPU_TESTS] + sys.argv[1:])


def bench() -> None:
    """Run the coupling step benchmark with the current interpreter."""
    print("Running coupling benchmark...")
    run_command([sys.executable, BENCHMARK])


def check() -> None:
    """lint, format check, typecheck and test in one go, stopping at the first failure."""
    lint()
    format()
    typecheck()
    test()
