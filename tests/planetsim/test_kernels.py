# tests/planetsim/test_kernels.py
import pytest
import torch

from planetsim.physics import kernels

try:
    import triton  # noqa: F401

    HAS_TRITON = True
except ImportError:
    HAS_TRITON = False

requires_triton_cuda = pytest.mark.skipif(
    not (HAS_TRITON and torch.cuda.is_available()), reason="Triton with CUDA required"
)

DIM = 8
CONSTANTS = {"DT": 1.0 / 60.0, "DX": 1.0 / DIM, "DX3": (1.0 / DIM) ** 3}


def make_buffers(dim=DIM, seed=0, device="cpu"):
    g = torch.Generator().manual_seed(seed)
    n = dim**3
    reads = [
        torch.randn(n, generator=g) * 0.1,
        torch.randn(3 * n, generator=g) * 0.1,
        torch.rand(n, generator=g),
    ]
    writes = [torch.zeros(n), torch.zeros(3 * n), torch.zeros(n)]
    return [t.to(device) for t in reads], [t.to(device) for t in writes]


def run(kernel, reads, writes, dim=DIM):
    kernel(*reads, *writes, dims=(dim, dim, dim), **CONSTANTS)


def test_copy_step_is_identity():
    reads, writes = make_buffers()
    run(kernels.copy_step, reads, writes)
    for r, w in zip(reads, writes):
        assert torch.equal(r, w)


def test_liquid_step_leaves_inputs_untouched():
    reads, writes = make_buffers()
    before = [r.clone() for r in reads]
    run(kernels.liquid_step, reads, writes)
    for r, b in zip(reads, before):
        assert torch.equal(r, b)


def test_uniform_cold_state_is_stationary():
    n = DIM**3
    reads = [torch.full((n,), -0.2), torch.zeros(3 * n), torch.zeros(n)]
    writes = [torch.zeros(n), torch.zeros(3 * n), torch.zeros(n)]
    run(kernels.liquid_step, reads, writes)
    assert torch.allclose(writes[0], reads[0])
    assert torch.count_nonzero(writes[1]) == 0
    assert torch.count_nonzero(writes[2]) == 0


def test_injection_raises_temperature():
    n = DIM**3
    reads = [torch.zeros(n), torch.zeros(3 * n), torch.zeros(n)]
    writes = [torch.zeros(n), torch.zeros(3 * n), torch.zeros(n)]
    writes[2][10] = 1e-4

    run(kernels.liquid_step, reads, writes)

    expected = 1e-4 / (kernels.HEAT_CAPACITY * CONSTANTS["DX3"])
    assert writes[2][10].item() == pytest.approx(expected, rel=1e-5)
    assert writes[2].sum().item() == pytest.approx(expected, rel=1e-5)


def test_diffusion_conserves_heat_with_zero_flux_borders():
    n = DIM**3
    temp = torch.zeros(n)
    temp[DIM**3 // 2] = 1.0
    reads = [torch.zeros(n), torch.zeros(3 * n), temp]
    writes = [torch.zeros(n), torch.zeros(3 * n), torch.zeros(n)]

    run(kernels.liquid_step, reads, writes)

    # Only Newtonian cooling removes heat
    expected = 1.0 * (1.0 - CONSTANTS["DT"] * kernels.COOLING)
    assert writes[2].sum().item() == pytest.approx(expected, rel=1e-5)


def test_flow_is_clamped():
    n = DIM**3
    reads = [torch.zeros(n), torch.full((3 * n,), 10.0), torch.zeros(n)]
    writes = [torch.zeros(n), torch.zeros(3 * n), torch.zeros(n)]
    run(kernels.liquid_step, reads, writes)
    assert writes[1].abs().max().item() <= kernels.MAX_FLOW


def test_hot_cells_melt():
    n = DIM**3
    reads = [torch.zeros(n), torch.zeros(3 * n), torch.full((n,), 1.0)]
    writes = [torch.zeros(n), torch.zeros(3 * n), torch.zeros(n)]
    run(kernels.liquid_step, reads, writes)
    expected = CONSTANTS["DT"] * kernels.MELT_RATE * (1.0 - kernels.MELT_POINT)
    assert torch.allclose(writes[0], torch.full((n,), expected))


def test_laplacian_of_constant_is_zero():
    f = torch.full((4, 5, 6), 2.5)
    assert torch.count_nonzero(kernels.laplacian(f, 0.1)) == 0


def test_gradient_component_order():
    z, y, x = torch.meshgrid(
        torch.arange(6.0), torch.arange(6.0), torch.arange(6.0), indexing="ij"
    )
    g = kernels.gradient(x * 2.0 + z, 1.0)
    assert g.shape == (6, 6, 6, 3)
    # Interior cells see the exact slope
    assert torch.allclose(g[2:4, 2:4, 2:4, 0], torch.full((2, 2, 2), 2.0))
    assert torch.allclose(g[2:4, 2:4, 2:4, 1], torch.zeros(2, 2, 2))
    assert torch.allclose(g[2:4, 2:4, 2:4, 2], torch.ones(2, 2, 2))


def test_upwind_gradient_uses_upstream_side():
    # Kink at x = 3: slope 1 to the left, slope 3 to the right
    x = torch.arange(8.0)
    f = torch.where(x <= 3, x, 3.0 + 3.0 * (x - 3.0)).expand(2, 2, 8).contiguous()
    v = torch.zeros(2, 2, 8, 3)

    v[..., 0] = 1.0
    g = kernels.upwind_gradient(f, v, 1.0)
    assert g[0, 0, 3, 0].item() == pytest.approx(1.0)

    v[..., 0] = -1.0
    g = kernels.upwind_gradient(f, v, 1.0)
    assert g[0, 0, 3, 0].item() == pytest.approx(3.0)
    # Constant along y and z
    assert torch.count_nonzero(g[..., 1:]) == 0


def test_stable_limits():
    assert kernels.stable_limits(CONSTANTS["DT"], CONSTANTS["DX"]) == (
        kernels.DIFFUSIVITY,
        kernels.MAX_FLOW,
    )
    diffusivity, v_limit = kernels.stable_limits(1.0, 0.1)
    assert diffusivity == pytest.approx(0.01 / 6.0)
    assert v_limit == pytest.approx(0.1 / 3.0)


def test_large_step_stays_bounded():
    reads, writes = make_buffers()
    reads[1].mul_(100.0)
    reads[2].mul_(50.0)
    constants = {"DT": 1.0, "DX": 1.0 / DIM, "DX3": (1.0 / DIM) ** 3}
    for _ in range(200):
        kernels.liquid_step(*reads, *writes, dims=(DIM, DIM, DIM), **constants)
        reads, writes = writes, [torch.zeros_like(r) for r in reads]

    mass, flow, temp = reads
    assert all(torch.isfinite(t).all() for t in reads)
    assert mass.abs().max().item() <= kernels.MASS_LIMIT
    assert flow.abs().max().item() <= constants["DX"] / 3.0 + 1e-6


@requires_triton_cuda
def test_triton_matches_torch():
    from planetsim.physics import triton_kernels

    reads, writes = make_buffers(device="cuda")
    ref_writes = [w.clone() for w in writes]
    writes[2][5] = 1e-5
    ref_writes[2][5] = 1e-5

    run(kernels.liquid_step, reads, ref_writes)

    n = DIM**3
    grid = (triton.cdiv(n, 256),)
    triton_kernels.liquid_step[grid](*reads, *writes, DIM, n, BLOCK_SIZE=256, **CONSTANTS)
    torch.cuda.synchronize()

    for ours, ref in zip(writes, ref_writes):
        assert torch.allclose(ours, ref, atol=1e-5, rtol=1e-4)


@requires_triton_cuda
def test_triton_copy_step():
    from planetsim.physics import triton_kernels

    reads, writes = make_buffers(device="cuda")
    n = DIM**3
    grid = (triton.cdiv(n, 256),)
    triton_kernels.copy_step[grid](*reads, *writes, DIM, n, BLOCK_SIZE=256, **CONSTANTS)
    torch.cuda.synchronize()
    for r, w in zip(reads, writes):
        assert torch.equal(r, w)
