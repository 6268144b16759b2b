# Marks `runpath.deps` as a package so `from runpath.deps.auth import ...` works.
