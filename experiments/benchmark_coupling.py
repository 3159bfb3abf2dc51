import torch

from planetsim.core.config import ComputeConfig, FieldConfig, SimulationConfig
from planetsim.geometry.pipeline import GeometryPipeline
from planetsim.utils.profiling import PerformanceTracker


def run_benchmark(dim=64, steps=50, backend="torch", extract=False):
    device = "cuda" if torch.cuda.is_available() else "cpu"
    if backend == "triton" and device == "cpu":
        print("SKIP: Triton backend needs CUDA.")
        return None
    if device == "cpu":
        print("WARNING: CUDA not available. CPU numbers are not representative for GPU kernels.")

    # 1. Config
    cfg = SimulationConfig(
        field=FieldConfig(dim=dim, threshold=0.18, seed=0),
        compute=ComputeConfig(backend=backend, device=device),
    )
    pipeline = GeometryPipeline(cfg)
    pipeline.set_effect(True)

    # 2. Warm-up (Triton compiles on first launch)
    for _ in range(3):
        pipeline.fixed_update(cfg.fixed_dt)

    # 3. Actual Benchmark
    tag = f"{backend} dim={dim}{' +mesh' if extract else ''}"
    print(f"Starting Benchmark: {tag} for {steps} ticks...")

    with PerformanceTracker(tag, device=device, iterations=steps) as tracker:
        for _ in range(steps):
            pipeline.fixed_update(cfg.fixed_dt)
            if extract:
                pipeline.update_vbo()

    res = tracker.result
    print(f"DONE: {res.elapsed_ms:.2f} ms total | {res.per_iteration_ms:.2f} ms/tick")
    print(f"Peak VRAM: {res.max_vram_mb:.1f} MB")
    return res


if __name__ == "__main__":
    print("--- Performance Benchmark (coupling step) ---")

    res_torch = run_benchmark(dim=64, steps=50, backend="torch")
    res_mesh = run_benchmark(dim=64, steps=50, backend="torch", extract=True)
    res_triton = run_benchmark(dim=64, steps=50, backend="triton")

    print("\n" + "=" * 40)
    print("SUMMARY (64^3 grid)")
    print(f"Torch step:          {res_torch.per_iteration_ms:.2f} ms/tick")
    print(f"Torch step + mesh:   {res_mesh.per_iteration_ms:.2f} ms/tick")
    if res_triton is not None:
        print(f"Triton step:         {res_triton.per_iteration_ms:.2f} ms/tick")
        print(f"Speedup Triton vs torch: {res_torch.elapsed_ms / res_triton.elapsed_ms:.2f}x")
    print("=" * 40)
