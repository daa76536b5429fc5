import logging

LOGGER = logging.getLogger("dexroll.launcher")


def main() -> None:
    from app import App

    LOGGER.debug("Starting main window")
    app = App()
    app.mainloop()


if __name__ == "__main__":
    main()
