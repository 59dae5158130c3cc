"""QuizCraft backend package.

Question generation from uploaded documents (`generation`), the timed
quiz attempt lifecycle (`attempts`) and the FastAPI application exposing
both (`main`). Shared text, parsing and validation helpers live under
`utils`.
"""
