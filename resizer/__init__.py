# resizer/__init__.py
"""
Keep this file minimal so 'resizer' is always a proper package.

Do NOT import submodules here (e.g., don't import main).
Tests and runtime should import from 'resizer.main' directly:
    from resizer.main import create_app
And Uvicorn should use:
    uvicorn resizer.main:create_app --factory
"""
