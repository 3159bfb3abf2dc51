# src/planetsim/physics/triton_kernels.py
"""
Triton versions of the kernels in planetsim.physics.kernels.

Same positional buffer order (read generation first), followed by the grid
side length and cell count. DT, DX and DX3 are compile-time constants.
"""
import triton
import triton.language as tl

from planetsim.physics import kernels as ref

DIFFUSIVITY = tl.constexpr(ref.DIFFUSIVITY)
COOLING = tl.constexpr(ref.COOLING)
HEAT_CAPACITY = tl.constexpr(ref.HEAT_CAPACITY)
MELT_POINT = tl.constexpr(ref.MELT_POINT)
MELT_RATE = tl.constexpr(ref.MELT_RATE)
BUOYANCY = tl.constexpr(ref.BUOYANCY)
DRAG = tl.constexpr(ref.DRAG)
MAX_FLOW = tl.constexpr(ref.MAX_FLOW)
MASS_LIMIT = tl.constexpr(ref.MASS_LIMIT)


@triton.jit
def liquid_step(
    mass_r, flow_r, temp_r, mass_w, flow_w, temp_w,
    dim, n_cells,
    DT: tl.constexpr, DX: tl.constexpr, DX3: tl.constexpr,
    BLOCK_SIZE: tl.constexpr,
):
    pid = tl.program_id(0)
    offs = pid * BLOCK_SIZE + tl.arange(0, BLOCK_SIZE)
    m_all = offs < n_cells

    x = offs % dim
    y = (offs // dim) % dim
    z = offs // (dim * dim)

    # Neighbour indices, clamped at the border (zero flux)
    xl, xr = tl.maximum(0, x - 1), tl.minimum(dim - 1, x + 1)
    yu, yd = tl.maximum(0, y - 1), tl.minimum(dim - 1, y + 1)
    zf, zb = tl.maximum(0, z - 1), tl.minimum(dim - 1, z + 1)
    row = z * dim * dim + y * dim
    i_xl = row + xl
    i_xr = row + xr
    i_yu = z * dim * dim + yu * dim + x
    i_yd = z * dim * dim + yd * dim + x
    i_zf = zf * dim * dim + y * dim + x
    i_zb = zb * dim * dim + y * dim + x

    # Temperature
    Tc = tl.load(temp_r + offs, mask=m_all, other=0.0)
    Txl = tl.load(temp_r + i_xl, mask=m_all, other=0.0)
    Txr = tl.load(temp_r + i_xr, mask=m_all, other=0.0)
    Tyu = tl.load(temp_r + i_yu, mask=m_all, other=0.0)
    Tyd = tl.load(temp_r + i_yd, mask=m_all, other=0.0)
    Tzf = tl.load(temp_r + i_zf, mask=m_all, other=0.0)
    Tzb = tl.load(temp_r + i_zb, mask=m_all, other=0.0)
    inj = tl.load(temp_w + offs, mask=m_all, other=0.0)

    # Effective diffusivity and flow cap, see kernels.stable_limits
    d_eff = tl.minimum(tl.full([BLOCK_SIZE], DIFFUSIVITY, tl.float32), DX * DX / (6.0 * DT))
    v_lim = tl.minimum(tl.full([BLOCK_SIZE], MAX_FLOW, tl.float32), DX / (3.0 * DT))

    lap = (Txl + Txr + Tyu + Tyd + Tzf + Tzb - 6.0 * Tc) / (DX * DX)
    T_new = Tc + DT * (d_eff * lap - COOLING * Tc) + inj / (HEAT_CAPACITY * DX3)

    gTx = (Txr - Txl) / (2.0 * DX)
    gTy = (Tyd - Tyu) / (2.0 * DX)
    gTz = (Tzb - Tzf) / (2.0 * DX)

    # Flow
    vx = tl.load(flow_r + 3 * offs + 0, mask=m_all, other=0.0)
    vy = tl.load(flow_r + 3 * offs + 1, mask=m_all, other=0.0)
    vz = tl.load(flow_r + 3 * offs + 2, mask=m_all, other=0.0)
    vx = tl.minimum(tl.maximum(vx, -v_lim), v_lim)
    vy = tl.minimum(tl.maximum(vy, -v_lim), v_lim)
    vz = tl.minimum(tl.maximum(vz, -v_lim), v_lim)
    keep = 1.0 - DT * DRAG
    vx_new = tl.minimum(tl.maximum(vx * keep - DT * BUOYANCY * gTx, -v_lim), v_lim)
    vy_new = tl.minimum(tl.maximum(vy * keep - DT * BUOYANCY * gTy, -v_lim), v_lim)
    vz_new = tl.minimum(tl.maximum(vz * keep - DT * BUOYANCY * gTz, -v_lim), v_lim)

    # Mass, advected upwind
    Mc = tl.load(mass_r + offs, mask=m_all, other=0.0)
    Mxl = tl.load(mass_r + i_xl, mask=m_all, other=0.0)
    Mxr = tl.load(mass_r + i_xr, mask=m_all, other=0.0)
    Myu = tl.load(mass_r + i_yu, mask=m_all, other=0.0)
    Myd = tl.load(mass_r + i_yd, mask=m_all, other=0.0)
    Mzf = tl.load(mass_r + i_zf, mask=m_all, other=0.0)
    Mzb = tl.load(mass_r + i_zb, mask=m_all, other=0.0)
    dMx = tl.where(vx > 0.0, Mc - Mxl, Mxr - Mc) / DX
    dMy = tl.where(vy > 0.0, Mc - Myu, Myd - Mc) / DX
    dMz = tl.where(vz > 0.0, Mc - Mzf, Mzb - Mc) / DX
    adv = vx * dMx + vy * dMy + vz * dMz
    M_new = Mc + DT * MELT_RATE * tl.maximum(Tc - MELT_POINT, 0.0) - DT * adv
    M_new = tl.minimum(tl.maximum(M_new, -MASS_LIMIT), MASS_LIMIT)

    tl.store(temp_w + offs, T_new, mask=m_all)
    tl.store(flow_w + 3 * offs + 0, vx_new, mask=m_all)
    tl.store(flow_w + 3 * offs + 1, vy_new, mask=m_all)
    tl.store(flow_w + 3 * offs + 2, vz_new, mask=m_all)
    tl.store(mass_w + offs, M_new, mask=m_all)


@triton.jit
def copy_step(
    mass_r, flow_r, temp_r, mass_w, flow_w, temp_w,
    dim, n_cells,
    DT: tl.constexpr, DX: tl.constexpr, DX3: tl.constexpr,
    BLOCK_SIZE: tl.constexpr,
):
    pid = tl.program_id(0)
    offs = pid * BLOCK_SIZE + tl.arange(0, BLOCK_SIZE)
    m_all = offs < n_cells
    tl.store(mass_w + offs, tl.load(mass_r + offs, mask=m_all), mask=m_all)
    tl.store(temp_w + offs, tl.load(temp_r + offs, mask=m_all), mask=m_all)
    for c in tl.static_range(3):
        f = tl.load(flow_r + 3 * offs + c, mask=m_all)
        tl.store(flow_w + 3 * offs + c, f, mask=m_all)
