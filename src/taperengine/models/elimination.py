# src/taperengine/models/elimination.py


def oral_first_order(t, y, ka, ke):
    """
    Oral dosing with first-order absorption and first-order elimination.
    Amounts only (no volume), so the result is body load, not concentration.

    States:
      y[0] = drug waiting in the gut (mg)
      y[1] = drug in the body (mg)

    Parameters:
      t  : current time (h), unused (autonomous system)
      y  : current state vector [A_gut, A_body]
      ka : absorption rate constant (1/h)
      ke : elimination rate constant (1/h), ln2 / half-life
    """
    A_gut, A_body = y
    dA_gut_dt = -ka * A_gut
    dA_body_dt = ka * A_gut - ke * A_body
    return [dA_gut_dt, dA_body_dt]
