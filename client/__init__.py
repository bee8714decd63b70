"""
Client-side OTP state machines: countdown, 6-cell code input and the session
that ties them to server responses. Pure transition functions only; a view
layer renders the returned state and owns the real timer.
"""
