"""Linear density response: occupations, orbitals and chi0."""
from pwresponse.response.context import (ResponseContext,  # noqa
                                         ensure_context, timer)
from pwresponse.response.chi0 import (ApplyChi0Context, Chi0Operator,  # noqa
                                      apply_chi0, apply_chi0_4p)
from pwresponse.response.chi0_explicit import compute_chi0  # noqa
from pwresponse.response.sternheimer import sternheimer_solver  # noqa

__all__ = ['ResponseContext', 'ensure_context', 'timer',
           'ApplyChi0Context', 'Chi0Operator', 'apply_chi0', 'apply_chi0_4p',
           'compute_chi0', 'sternheimer_solver']
