# pybouss/constants.py

"""
Physical constants and unit helpers for the Boussinesq box model.
"""

# Gravitational acceleration (m/s^2)
GRAVITY = 9.81

# Linear equation of state (Boussinesq buoyancy)
ALPHA_T = 2.0e-4   # thermal expansion coefficient (1/K)
BETA_S = 8.0e-4    # haline contraction coefficient (1/psu)
T_REF = 20.0       # reference temperature (°C)
S_REF = 35.0       # reference salinity (psu)

# Adams-Bashforth 2 stabilisation parameter
AB2_CHI = 0.125

# Byte sizes for output size budgets
KiB = 1024
MiB = 1024 ** 2
GiB = 1024 ** 3
