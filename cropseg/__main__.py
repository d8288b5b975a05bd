"""
Entry point for python -m cropseg
"""
if __name__ == "__main__":
    from .cli import main
    main()
