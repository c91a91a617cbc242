"""
Pipeline orchestrator for Winograd F(2,3).

Run lifecycle:

    prepare(shape)   TileGeometry, BufferLayout, allocation, argument binding
    upload(...)      filters, image and the G/B/A constants      -> UPLOADED
    run_stage(name)  filter_transform / data_transform (any order),
                     then calc_M, then calc_Y                    -> Y_COMPUTED
    read_back()      finish barrier + blocking download of Y     -> READ_BACK

All stages go to the one in-order queue of the RunContext, so FIFO order
already satisfies calc_M's dependency on U and V and calc_Y's on M. The
orchestrator still refuses to issue a stage whose inputs were not
produced in this run. Any accelerator error marks the run failed; only a
fresh upload starts it again. A pipeline instance is single-threaded and
must not be shared between concurrent runs.
"""

import enum
import time
from dataclasses import dataclass

import numpy as np

from tiled_winograd.errors import AcceleratorError, PipelineStateError
from tiled_winograd.layout import ELEMENT_DTYPE, OUTPUT_ROLES, BufferLayout
from tiled_winograd.partition import stage_partitions
from tiled_winograd.runtime import create_run_context
from tiled_winograd.stages import STAGE_SPECS, STAGES_BY_NAME
from tiled_winograd.stats import RunStatistics
from tiled_winograd.tiling import R_FILTER, ProblemShape, TileGeometry
from tiled_winograd.transforms import TRANSFORM_CONSTANTS


class PipelineState(enum.IntEnum):
    EMPTY = 0
    PREPARED = 1
    UPLOADED = 2
    U_TRANSFORMED = 3
    V_TRANSFORMED = 4
    M_COMPUTED = 5
    Y_COMPUTED = 6
    READ_BACK = 7


# Milestones in order, with the stages that must have completed to reach each
_MILESTONES = (
    (PipelineState.U_TRANSFORMED, {"filter_transform"}),
    (PipelineState.V_TRANSFORMED, {"filter_transform", "data_transform"}),
    (PipelineState.M_COMPUTED, {"filter_transform", "data_transform", "calc_M"}),
    (PipelineState.Y_COMPUTED, {"filter_transform", "data_transform", "calc_M", "calc_Y"}),
)


@dataclass
class RunResult:
    output: np.ndarray
    elapsed: float
    mflops: float
    flop: int
    geometry: TileGeometry

    @property
    def statistics(self):
        return RunStatistics(flop=self.flop, elapsed=self.elapsed, mflops=self.mflops)


class WinogradPipeline:
    """Drives the four stages over one RunContext.

    Buffers are kept between runs and reused when the next run has the
    same ProblemShape.

    Args:
        ctx:     RunContext from create_run_context().
        verbose: Print allocation and per-stage dispatch lines.
    """

    def __init__(self, ctx, verbose=False):
        self.ctx = ctx
        self.verbose = verbose
        self.geometry = None
        self.layout = None
        self.partitions = None
        self.buffers = {}
        self._prepared = False
        self._uploaded = False
        self._completed = set()
        self._read_back = False
        self._failed = None

    # ── state ────────────────────────────────────────────────────────────

    @property
    def state(self):
        if self._read_back:
            return PipelineState.READ_BACK
        if not self._prepared:
            return PipelineState.EMPTY
        if not self._uploaded:
            return PipelineState.PREPARED
        state = PipelineState.UPLOADED
        for milestone, required in _MILESTONES:
            if not required <= self._completed:
                break
            state = milestone
        return state

    @property
    def failed(self):
        return self._failed is not None

    def _mark_failed(self, operation):
        self._failed = operation

    def _check_usable(self):
        if self._failed is not None:
            raise PipelineStateError(
                f"run failed in '{self._failed}'; intermediate buffers are undefined, "
                f"upload again to restart")

    # ── setup ────────────────────────────────────────────────────────────

    def prepare(self, shape):
        """Derive geometry and partitions, allocate (or reuse) buffers, bind stages.

        Shape errors are raised here, before any device buffer is created.
        """
        geometry = TileGeometry.from_shape(shape)
        partitions = stage_partitions(geometry)

        if self.layout is None or not self.layout.matches(shape):
            layout = BufferLayout(geometry)
            self.buffers = {}
            self.layout = None
            self._prepared = False
            try:
                self.buffers = self._allocate(layout)
            except AcceleratorError:
                self._mark_failed("create_buffer")
                raise
            self.layout = layout
        elif self.verbose:
            print(f"Reusing buffers for {shape}")

        self.geometry = geometry
        self.partitions = partitions
        self._bind()
        self._prepared = True
        self._uploaded = False
        self._completed = set()
        self._read_back = False
        self._failed = None
        return geometry

    def _allocate(self, layout):
        runtime, ctx = self.ctx.runtime, self.ctx
        buffers = {}
        for buf in layout:
            buffers[buf.role] = runtime.create_buffer(ctx.context, buf.access, buf.nbytes, role=buf.role)
        if self.verbose:
            print(f"Allocated {len(buffers)} buffers, {layout.total_bytes() / 2**20:.2f} MB "
                  f"for {layout.shape}")
        return buffers

    def _bind(self):
        scalars = self.geometry.scalars()
        for spec in STAGE_SPECS:
            assert spec.writes in OUTPUT_ROLES, f"{spec.name} writes non-output role {spec.writes}"
            assert spec.writes not in spec.operands[:-1], f"{spec.name} aliases its output"
            stage = self.ctx.stages[spec.name]
            stage.bind([self.buffers[role] for role in spec.operands],
                       [scalars[name] for name in spec.scalars])

    def upload(self, filters, image):
        """Copy filters [K, C, 3, 3], image [C, H, W] and G/B/A to the device."""
        if not self._prepared:
            raise PipelineStateError("prepare() must be called before upload()")
        g = self.geometry
        filters = np.asarray(filters, dtype=ELEMENT_DTYPE)
        image = np.asarray(image, dtype=ELEMENT_DTYPE)
        assert filters.size == g.K * g.C * R_FILTER * R_FILTER, \
            f"filters have {filters.size} values, expected K*C*9 = {g.K * g.C * 9}"
        assert image.size == g.C * g.H * g.W, \
            f"image has {image.size} values, expected C*H*W = {g.C * g.H * g.W}"

        self._failed = None
        self._completed = set()
        self._read_back = False
        host = {"filters": filters, "image": image}
        host.update(TRANSFORM_CONSTANTS)
        runtime, queue = self.ctx.runtime, self.ctx.queue
        try:
            for role, data in host.items():
                runtime.upload(queue, self.buffers[role], data)
        except AcceleratorError:
            self._mark_failed("upload")
            raise
        self._uploaded = True

    # ── execution ────────────────────────────────────────────────────────

    def run_stage(self, name):
        """Dispatch one stage after checking its inputs were produced in this run."""
        self._check_usable()
        spec = STAGES_BY_NAME[name]
        if not self._uploaded:
            raise PipelineStateError(f"cannot run '{name}' before upload()")
        missing = [d for d in spec.depends_on if d not in self._completed]
        if missing:
            raise PipelineStateError(f"cannot run '{name}' before {missing}")

        part = self.partitions[name]
        if self.verbose:
            print(f"  {name:<18} global={part.global_extent} local={part.local_extent}")
        try:
            self.ctx.runtime.enqueue(self.ctx.queue, self.ctx.stages[name],
                                     part.global_extent, part.local_extent)
        except AcceleratorError:
            self._mark_failed(name)
            raise
        self._completed.add(name)
        self._read_back = False

    def synchronize(self):
        """Block until every dispatched stage has completed."""
        self._check_usable()
        try:
            self.ctx.runtime.finish(self.ctx.queue)
        except AcceleratorError:
            self._mark_failed("finish")
            raise

    def execute(self):
        """Dispatch all four stages in dependency order and wait for them.

        Returns:
            Elapsed wall time in seconds, dispatch through barrier.
        """
        start = time.perf_counter()
        for spec in STAGE_SPECS:
            self.run_stage(spec.name)
        self.synchronize()
        return time.perf_counter() - start

    def read_back(self):
        """Barrier, then blocking download of Y as a [K, out_H, out_W] array."""
        self._check_usable()
        if "calc_Y" not in self._completed:
            raise PipelineStateError("cannot read back Y before calc_Y has run")
        self.synchronize()
        g = self.geometry
        Y = np.empty((g.K, g.out_H, g.out_W), dtype=ELEMENT_DTYPE)
        try:
            self.ctx.runtime.download(self.ctx.queue, self.buffers["Y"], Y)
        except AcceleratorError:
            self._mark_failed("download")
            raise
        self._read_back = True
        return Y

    def run(self, filters, image):
        """One full run: prepare, upload, execute, read back.

        Args:
            filters: [K, C, 3, 3] array.
            image:   [C, H, W] array.

        Returns:
            RunResult with the output tensor and timing statistics.
        """
        filters = np.asarray(filters, dtype=ELEMENT_DTYPE)
        image = np.asarray(image, dtype=ELEMENT_DTYPE)
        assert filters.ndim == 4 and filters.shape[2:] == (R_FILTER, R_FILTER), \
            f"filters must be [K, C, 3, 3], got {filters.shape}"
        assert image.ndim == 3 and image.shape[0] == filters.shape[1], \
            f"image must be [C, H, W] with C={filters.shape[1]}, got {image.shape}"
        K, C = filters.shape[:2]
        _, H, W = image.shape

        geometry = self.prepare(ProblemShape(K, C, H, W))
        self.upload(filters, image)
        elapsed = self.execute()
        stats = RunStatistics.compute(K, C, geometry.P, elapsed)
        output = self.read_back()
        return RunResult(output=output, elapsed=elapsed, mflops=stats.mflops,
                         flop=stats.flop, geometry=geometry)

    def release(self):
        self.buffers = {}
        self.layout = None
        self._prepared = False
        self._uploaded = False
        self._completed = set()
        self._read_back = False


def winograd_conv2d(filters, image, backend=None, device=None, ctx=None):
    """Functional API: valid 3x3 convolution through the F(2,3) pipeline.

    Args:
        filters: [K, C, 3, 3] array.
        image:   [C, H, W] array with even H, W >= 4.
        backend: "torch" or "opencl" (ignored when ctx is given).
        device:  Backend device selector (ignored when ctx is given).
        ctx:     Existing RunContext to reuse.

    Returns:
        [K, H-2, W-2] float32 numpy array.
    """
    own_ctx = ctx is None
    if own_ctx:
        ctx = create_run_context(backend=backend, device=device)
    try:
        return WinogradPipeline(ctx).run(filters, image).output
    finally:
        if own_ctx:
            ctx.release()
