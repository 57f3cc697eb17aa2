from ovpnsvc.cli import main

if __name__ == "__main__":
    main()
